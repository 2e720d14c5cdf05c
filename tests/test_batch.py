from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

import pytest

from conftest import RecordingCodec, make_image
from imgconverter.batch import BatchConverter, ConversionOutcome, normalize_concurrency, parse_path_list
from imgconverter.converter import DisabledCodec
from imgconverter.errors import BatchConversionError, PayloadError


def test_normalize_concurrency() -> None:
    assert normalize_concurrency(0) == 4
    assert normalize_concurrency(-3) == 4
    assert normalize_concurrency(2) == 2


def test_empty_list_spawns_no_workers(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(*args, **kwargs):
        raise AssertionError("no pool expected")

    monkeypatch.setattr("imgconverter.batch.ThreadPoolExecutor", boom)
    result = BatchConverter(DisabledCodec()).convert_many([])
    assert result.successes == []
    assert result.failures == []
    assert result.error is None


def test_all_success(recording_codec: RecordingCodec) -> None:
    paths = [f"img{i}.jpg" for i in range(6)]
    result = BatchConverter(recording_codec).convert_many(paths, concurrency=3)
    assert sorted(p.name for p in result.successes) == sorted(f"img{i}.webp" for i in range(6))
    assert result.error is None
    result.raise_for_failures()


def test_disabled_codec_fails_every_item() -> None:
    paths = [f"/photos/img{i}.jpg" for i in range(5)]
    result = BatchConverter(DisabledCodec()).convert_many(paths, concurrency=2)
    assert result.successes == []
    assert len(result.failures) == 5
    for p in paths:
        assert result.error.count(f"processing {p} failed:") == 1
    assert result.error.count("; ") == 4


def test_partial_success_kept_alongside_error() -> None:
    codec = RecordingCodec(fail={"bad.jpg"})
    result = BatchConverter(codec).convert_many(["good.jpg", "bad.jpg", "fine.png"])
    assert sorted(p.name for p in result.successes) == ["fine.webp", "good.webp"]
    assert result.error == f"processing {Path('bad.jpg')} failed: cannot decode bad.jpg"

    with pytest.raises(BatchConversionError) as excinfo:
        result.raise_for_failures()
    assert excinfo.value.result is result
    assert len(excinfo.value.result.successes) == 2


def test_zero_concurrency_accounts_for_all_items() -> None:
    codec = RecordingCodec(fail={"img3.jpg", "img7.jpg"})
    result = BatchConverter(codec).convert_many([f"img{i}.jpg" for i in range(10)], concurrency=0)
    assert result.total == 10
    assert len(result.successes) == 8
    assert len(codec.calls) == 10
    assert len(set(codec.calls)) == 10


def test_concurrency_is_bounded() -> None:
    active = 0
    peak = 0
    lock = threading.Lock()

    class SlowCodec(RecordingCodec):
        def convert(self, path, use_target_ext, quality):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.02)
            with lock:
                active -= 1
            return super().convert(path, use_target_ext, quality)

    result = BatchConverter(SlowCodec()).convert_many([f"{i}.jpg" for i in range(12)], concurrency=3)
    assert result.total == 12
    assert peak <= 3


def test_resize_bounds_route_to_convert_resized(recording_codec: RecordingCodec) -> None:
    BatchConverter(recording_codec).convert_many(["a.jpg"], keep_original=False, max_width=800)
    assert recording_codec.resized_calls == [(Path("a.jpg"), 800, 0, False)]


def test_on_outcome_called_per_job(recording_codec: RecordingCodec) -> None:
    seen: list[ConversionOutcome] = []
    lock = threading.Lock()

    def collect(outcome: ConversionOutcome) -> None:
        with lock:
            seen.append(outcome)

    BatchConverter(recording_codec, on_outcome=collect).convert_many(["a.jpg", "b.jpg", "c.jpg"], concurrency=2)
    assert len(seen) == 3


def test_parse_path_list() -> None:
    assert parse_path_list('["a.jpg", "b/c.png"]') == [Path("a.jpg"), Path("b/c.png")]
    assert parse_path_list(b"[]") == []


@pytest.mark.parametrize("payload", ["[1,2,", '{"a": 1}', "[1, 2]", '"a.jpg"'])
def test_malformed_payload_fails_before_conversion(payload: str, recording_codec: RecordingCodec) -> None:
    with pytest.raises(PayloadError):
        BatchConverter(recording_codec).convert_serialized_list(payload)
    assert recording_codec.calls == []


def test_serialized_list(recording_codec: RecordingCodec) -> None:
    result = BatchConverter(recording_codec).convert_serialized_list('["x.jpg", "y.jpg"]', concurrency=1)
    assert sorted(p.name for p in result.successes) == ["x.webp", "y.webp"]

    empty = BatchConverter(recording_codec).convert_serialized_list("[]")
    assert empty.successes == [] and empty.error is None


def test_directory_sync_counts_attempts_with_disabled_codec(tmp_path: Path, caplog) -> None:
    make_image(tmp_path / "one.jpg")
    make_image(tmp_path / "two.png")
    (tmp_path / "skip.gif").write_bytes(b"GIF89a")

    with caplog.at_level(logging.WARNING, logger="imgconverter.batch"):
        count = BatchConverter(DisabledCodec()).convert_directory_sync(tmp_path)
    assert count == 2
    assert sum("failed:" in r.getMessage() for r in caplog.records) == 2


def test_directory_sync_recursive(image_dir: Path, recording_codec: RecordingCodec) -> None:
    count = BatchConverter(recording_codec).convert_directory_sync(image_dir, recursive=True)
    assert count == 4
    assert [p.name for p in recording_codec.calls] == ["a.jpg", "b.PNG", "c.webp", "d.jpeg"]


def test_directory_pool_counts_successes(image_dir: Path) -> None:
    codec = RecordingCodec(fail={"b.PNG"})
    assert BatchConverter(codec).convert_directory(image_dir, recursive=True, concurrency=2) == 3
    assert BatchConverter(codec).convert_directory(image_dir, recursive=False) == 1


def test_directory_pool_disabled_codec_returns_zero(image_dir: Path) -> None:
    assert BatchConverter(DisabledCodec()).convert_directory(image_dir, recursive=True) == 0


def test_directory_unreadable_raises(tmp_path: Path, recording_codec: RecordingCodec) -> None:
    converter = BatchConverter(recording_codec)
    with pytest.raises(OSError):
        converter.convert_directory(tmp_path / "missing", recursive=True)
    with pytest.raises(OSError):
        converter.convert_directory_sync(tmp_path / "missing")
    assert recording_codec.calls == []


def test_directory_pool_unreadable_subdir_starts_no_conversion(
    image_dir: Path, recording_codec: RecordingCodec, monkeypatch: pytest.MonkeyPatch
) -> None:
    real_iterdir = Path.iterdir

    def iterdir(self):
        if self.name == "deeper":
            raise PermissionError(13, "Permission denied", str(self))
        return real_iterdir(self)

    monkeypatch.setattr(Path, "iterdir", iterdir)
    with pytest.raises(PermissionError):
        BatchConverter(recording_codec).convert_directory(image_dir, recursive=True)
    assert recording_codec.calls == []


def test_failing_callback_keeps_all_outcomes(recording_codec: RecordingCodec, caplog) -> None:
    def broken(outcome: ConversionOutcome) -> None:
        raise RuntimeError("display gone")

    converter = BatchConverter(recording_codec, on_outcome=broken)
    with caplog.at_level(logging.ERROR, logger="imgconverter.batch"):
        result = converter.convert_many([f"{i}.jpg" for i in range(5)], concurrency=2)
    assert len(result.successes) == 5
    assert sum("结果回调失败" in r.getMessage() for r in caplog.records) == 5


def test_keep_original_without_bounds_is_logged(recording_codec: RecordingCodec, caplog) -> None:
    with caplog.at_level(logging.DEBUG, logger="imgconverter.batch"):
        BatchConverter(recording_codec).convert_many(["a.jpg"], keep_original=False)
    assert recording_codec.resized_calls == []
    assert any("keep_original=False" in r.getMessage() for r in caplog.records)
