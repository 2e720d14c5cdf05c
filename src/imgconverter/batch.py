"""批量转换引擎 - 固定大小的线程池消费任务队列"""

from __future__ import annotations

import json
import logging
import queue
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from .converter import ImageCodec, find_files
from .errors import BatchConversionError, PayloadError

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4


@dataclass(frozen=True)
class ConversionJob:
    """单个待转换文件 + 批次共享参数"""

    path: Path
    use_target_ext: bool
    quality: int
    keep_original: bool = True
    max_width: int | None = None
    max_height: int | None = None

    @property
    def resize(self) -> bool:
        return self.max_width is not None or self.max_height is not None


@dataclass(frozen=True)
class ConversionOutcome:
    """单个任务的结果：成功带输出路径，失败带错误信息"""

    path: Path
    output_path: Path | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        return f"processing {self.path} failed: {self.error}"


@dataclass
class BatchResult:
    """批次汇总结果，顺序不保证"""

    successes: list[Path] = field(default_factory=list)
    failures: list[ConversionOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.failures)

    @property
    def error(self) -> str | None:
        """所有失败信息用 "; " 连接；没有失败时为 None"""
        if not self.failures:
            return None
        return "; ".join(f.message for f in self.failures)

    def raise_for_failures(self) -> None:
        """有失败时抛出 BatchConversionError（异常中保留部分成功的结果）"""
        if self.failures:
            raise BatchConversionError(self)


OutcomeCallback = Callable[[ConversionOutcome], None]


def normalize_concurrency(concurrency: int) -> int:
    """非正数并发使用默认值 4"""
    return concurrency if concurrency > 0 else DEFAULT_CONCURRENCY


def parse_path_list(payload: str | bytes) -> list[Path]:
    """
    解析 JSON 路径数组

    Raises:
        PayloadError: JSON 格式错误，或不是字符串数组
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PayloadError(f"解析JSON失败: {e}") from e

    if not isinstance(data, list) or not all(isinstance(p, str) for p in data):
        raise PayloadError("解析JSON失败: 需要字符串数组")
    return [Path(p) for p in data]


class BatchConverter:
    """
    批量转换器

    每次调用新建线程池，调用返回前所有线程都已退出。
    编码器只需满足 ImageCodec 协议，成功返回输出路径、失败抛出异常。
    """

    def __init__(self, codec: ImageCodec, on_outcome: OutcomeCallback | None = None):
        self.codec = codec
        self.on_outcome = on_outcome

    def convert_many(
        self,
        paths: Iterable[str | Path],
        keep_original: bool = True,
        use_target_ext: bool = True,
        concurrency: int = DEFAULT_CONCURRENCY,
        quality: int = 80,
        max_width: int | None = None,
        max_height: int | None = None,
    ) -> BatchResult:
        """
        并发转换文件列表

        Returns:
            BatchResult，包含成功路径和全部失败；部分失败不会丢弃已成功的结果
        """
        jobs = self._make_jobs(paths, keep_original, use_target_ext, quality, max_width, max_height)
        result = BatchResult()
        for outcome in self._run_pool(jobs, concurrency):
            if outcome.ok:
                result.successes.append(outcome.output_path)
            else:
                result.failures.append(outcome)
        return result

    def convert_serialized_list(
        self,
        payload: str | bytes,
        keep_original: bool = True,
        use_target_ext: bool = True,
        concurrency: int = DEFAULT_CONCURRENCY,
        quality: int = 80,
        max_width: int | None = None,
        max_height: int | None = None,
    ) -> BatchResult:
        """解析 JSON 路径数组后并发转换；格式错误在启动任何线程前抛出 PayloadError"""
        paths = parse_path_list(payload)
        return self.convert_many(
            paths,
            keep_original=keep_original,
            use_target_ext=use_target_ext,
            concurrency=concurrency,
            quality=quality,
            max_width=max_width,
            max_height=max_height,
        )

    def convert_directory_sync(
        self,
        directory: str | Path,
        recursive: bool = False,
        keep_original: bool = True,
        use_target_ext: bool = True,
        quality: int = 80,
        max_width: int | None = None,
        max_height: int | None = None,
    ) -> int:
        """
        逐个同步转换目录中的图片

        单个文件失败只记录日志，不中断整个目录。

        Returns:
            处理（尝试转换）的文件数量

        Raises:
            OSError: 目录无法读取
        """
        count = 0
        for path in find_files(directory, recursive):
            job = ConversionJob(path, use_target_ext, quality, keep_original, max_width, max_height)
            outcome = self._process(job)
            if not outcome.ok:
                logger.warning(outcome.message)
            self._notify(outcome)
            count += 1
        return count

    def convert_directory(
        self,
        directory: str | Path,
        recursive: bool = False,
        keep_original: bool = True,
        use_target_ext: bool = True,
        concurrency: int = DEFAULT_CONCURRENCY,
        quality: int = 80,
        max_width: int | None = None,
        max_height: int | None = None,
    ) -> int:
        """
        先收集目录中所有图片，再并发转换

        Returns:
            转换成功的文件数量

        Raises:
            OSError: 目录无法读取（此时不会开始任何转换）
        """
        paths = find_files(directory, recursive)
        jobs = self._make_jobs(paths, keep_original, use_target_ext, quality, max_width, max_height)

        count = 0
        for outcome in self._run_pool(jobs, concurrency):
            if outcome.ok:
                count += 1
            else:
                logger.warning(outcome.message)
        return count

    def _make_jobs(
        self,
        paths: Iterable[str | Path],
        keep_original: bool,
        use_target_ext: bool,
        quality: int,
        max_width: int | None,
        max_height: int | None,
    ) -> list[ConversionJob]:
        return [
            ConversionJob(Path(p), use_target_ext, quality, keep_original, max_width, max_height)
            for p in paths
        ]

    def _run_pool(self, jobs: list[ConversionJob], concurrency: int) -> list[ConversionOutcome]:
        """启动固定数量的线程消费任务队列，全部结束后返回所有结果"""
        concurrency = normalize_concurrency(concurrency)
        if not jobs:
            return []

        pending: queue.Queue[ConversionJob] = queue.Queue(maxsize=len(jobs))
        for job in jobs:
            pending.put_nowait(job)
        outcomes: queue.Queue[ConversionOutcome] = queue.Queue(maxsize=len(jobs))

        logger.info("开始处理 %d 个文件，%d 线程", len(jobs), concurrency)

        # with 块退出即等待所有线程结束
        with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="convert") as executor:
            workers = [executor.submit(self._worker_loop, pending, outcomes) for _ in range(concurrency)]
        for w in workers:
            # 工作线程自身的异常（非转换异常）直接抛出
            w.result()

        results = []
        while not outcomes.empty():
            results.append(outcomes.get_nowait())
        return results

    def _worker_loop(self, pending: queue.Queue, outcomes: queue.Queue) -> None:
        while True:
            try:
                job = pending.get_nowait()
            except queue.Empty:
                return
            outcome = self._process(job)
            outcomes.put_nowait(outcome)
            self._notify(outcome)

    def _notify(self, outcome: ConversionOutcome) -> None:
        """回调出错只记日志，不影响已收集的结果"""
        if not self.on_outcome:
            return
        try:
            self.on_outcome(outcome)
        except Exception:
            logger.exception("结果回调失败: %s", outcome.path)

    def _process(self, job: ConversionJob) -> ConversionOutcome:
        """调用编码器转换单个文件，任何异常都转为失败结果"""
        try:
            if job.resize:
                out = self.codec.convert_resized(
                    job.path,
                    job.max_width or 0,
                    job.max_height or 0,
                    job.keep_original,
                    job.use_target_ext,
                    job.quality,
                )
            else:
                if not job.keep_original:
                    logger.debug("未设置最大尺寸，keep_original=False 被忽略: %s", job.path)
                out = self.codec.convert(job.path, job.use_target_ext, job.quality)
        except Exception as e:
            return ConversionOutcome(job.path, error=str(e) or type(e).__name__)
        return ConversionOutcome(job.path, output_path=Path(out))

