from __future__ import annotations

import threading
from pathlib import Path

import pytest
from PIL import Image


def make_image(path: Path, size: tuple[int, int] = (64, 48), mode: str = "RGB") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    color = (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)
    fmt = {".jpg": "JPEG", ".jpeg": "JPEG", ".png": "PNG", ".webp": "WEBP"}[path.suffix.lower()]
    Image.new(mode, size, color).save(path, format=fmt)
    return path


class RecordingCodec:
    """Succeeds for every path except those listed in ``fail``."""

    target_format = "webp"

    def __init__(self, fail: set[str] | None = None) -> None:
        self.fail = fail or set()
        self.calls: list[Path] = []
        self.resized_calls: list[tuple[Path, int, int, bool]] = []
        self._lock = threading.Lock()

    def _record(self, path: Path) -> Path:
        with self._lock:
            self.calls.append(path)
        if path.name in self.fail:
            raise OSError(f"cannot decode {path.name}")
        return path.with_suffix(".webp")

    def convert(self, path: Path, use_target_ext: bool, quality: int) -> Path:
        return self._record(path)

    def convert_resized(self, path, max_width, max_height, keep_original, use_target_ext, quality):
        with self._lock:
            self.resized_calls.append((path, max_width, max_height, keep_original))
        return self._record(path)


@pytest.fixture
def recording_codec() -> RecordingCodec:
    return RecordingCodec()


@pytest.fixture
def image_dir(tmp_path: Path) -> Path:
    make_image(tmp_path / "a.jpg")
    make_image(tmp_path / "b.PNG")
    (tmp_path / "notes.txt").write_text("not an image", encoding="utf-8")
    make_image(tmp_path / "nested" / "c.webp")
    make_image(tmp_path / "nested" / "deeper" / "d.jpeg")
    return tmp_path
