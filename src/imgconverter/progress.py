"""进度显示和任务执行模块"""

import time
import threading
from dataclasses import dataclass, field
from pathlib import Path

from .batch import BatchConverter, ConversionOutcome
from .config_data import TaskConfig
from .converter import ImageCodec, find_files


@dataclass
class TaskResult:
    """任务执行结果"""

    processed: int = 0
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class ProgressBar:
    """进度条显示，可被多个工作线程同时更新"""

    def __init__(self, total: int, description: str = ""):
        self.total = total
        self.current = 0
        self.failed = 0
        self.description = description
        self.start_time = time.time()
        self.lock = threading.Lock()

    def update(self, outcome: ConversionOutcome) -> None:
        """记录一个结果并刷新"""
        with self.lock:
            self.current += 1
            if not outcome.ok:
                self.failed += 1
            self._display()

    def _display(self):
        """显示进度条"""
        if self.total == 0:
            return

        elapsed = time.time() - self.start_time
        percentage = self.current / self.total * 100

        if self.current > 0:
            eta = elapsed * (self.total - self.current) / self.current
        else:
            eta = 0

        bar_length = 30
        filled_length = int(bar_length * self.current // self.total)
        bar = '█' * filled_length + '·' * (bar_length - filled_length)

        # 原地刷新
        print(f'\r{self.description} |{bar}| {percentage:5.1f}% [{self.current}/{self.total}] '
              f'✗{self.failed} {elapsed:5.1f}s 剩{eta:5.1f}s', end='', flush=True)

        if self.current >= self.total:
            print()


class OutcomeCounter:
    """统计成功/失败数，可被多个工作线程同时调用"""

    def __init__(self, progress: ProgressBar | None = None):
        self.success = 0
        self.failed = 0
        self.progress = progress
        self.lock = threading.Lock()

    def __call__(self, outcome: ConversionOutcome) -> None:
        with self.lock:
            if outcome.ok:
                self.success += 1
            else:
                self.failed += 1
        if self.progress:
            self.progress.update(outcome)


class TaskProcessor:
    """任务处理器：把一个 TaskConfig 交给 BatchConverter 执行"""

    def __init__(self, codec: ImageCodec, show_progress: bool = True):
        """
        初始化任务处理器

        Args:
            codec: 单文件编码器
            show_progress: 是否显示进度条
        """
        self.codec = codec
        self.show_progress = show_progress

    def process(self, task: TaskConfig) -> TaskResult:
        """
        处理单个任务

        Args:
            task: 任务配置

        Returns:
            任务执行结果
        """
        kind = task.kind
        if kind == "none":
            print(f"❌ [{task.name}] 未指定输入 (input_path / input_list)", flush=True)
            return TaskResult(failed=1, errors=["未指定输入"])
        if kind == "list":
            paths = [Path(p) for p in task.input_list]
        elif kind == "directory":
            try:
                paths = find_files(task.input_path, task.recursive)
            except OSError as e:
                print(f"❌ [{task.name}] 目录无法读取：{e}", flush=True)
                return TaskResult(errors=[str(e)])
        else:
            if not Path(task.input_path).exists():
                print(f"❌ [{task.name}] 文件不存在：{task.input_path}", flush=True)
                return TaskResult(processed=1, failed=1, errors=[f"文件不存在：{task.input_path}"])
            paths = [Path(task.input_path)]

        total = len(paths)
        if total == 0:
            print(f"⚠️  [{task.name}] 未找到可转换的图片", flush=True)
            return TaskResult()

        self._print_task_info(task, kind, total)

        progress = ProgressBar(total, "处理进度") if self.show_progress else None
        counter = OutcomeCounter(progress)
        converter = BatchConverter(self.codec, on_outcome=counter)
        start_time = time.time()

        if kind == "directory":
            result = self._run_directory(converter, counter, task)
        else:
            batch = converter.convert_many(
                paths,
                keep_original=task.keep_original,
                use_target_ext=task.use_target_ext,
                concurrency=task.concurrency,
                quality=task.quality,
                max_width=task.max_width,
                max_height=task.max_height,
            )
            result = TaskResult(
                processed=batch.total,
                success=len(batch.successes),
                failed=len(batch.failures),
                errors=[f.message for f in batch.failures],
            )
            for message in result.errors:
                print(f"✗ {message}", flush=True)

        elapsed = time.time() - start_time
        print(
            f"✅ 处理:{result.processed}, 成功:{result.success}, 失败:{result.failed} (耗时:{elapsed:.1f}秒)",
            flush=True,
        )
        return result

    def _run_directory(self, converter: BatchConverter, counter: OutcomeCounter, task: TaskConfig) -> TaskResult:
        """目录任务：转换器只返回数量，成功/失败数取自回调统计"""
        common = dict(
            recursive=task.recursive,
            keep_original=task.keep_original,
            use_target_ext=task.use_target_ext,
            quality=task.quality,
            max_width=task.max_width,
            max_height=task.max_height,
        )
        try:
            if task.mode == "sync":
                processed = converter.convert_directory_sync(task.input_path, **common)
            else:
                converter.convert_directory(task.input_path, concurrency=task.concurrency, **common)
                processed = counter.success + counter.failed
        except OSError as e:
            print(f"❌ [{task.name}] 目录无法读取：{e}", flush=True)
            return TaskResult(errors=[str(e)])
        return TaskResult(processed=processed, success=counter.success, failed=counter.failed)

    def _print_task_info(self, task: TaskConfig, kind: str, total: int) -> None:
        """打印任务信息"""
        separator = "=" * 60
        source = f"{len(task.input_list)} 个路径" if kind == "list" else task.input_path
        print(f"\n{separator}", flush=True)
        print(f"📋 任务：{task.name}", flush=True)
        print(f"   输入：{source}", flush=True)
        print(f"   转换：→ {self.codec.target_format.upper()}", flush=True)
        print(f"   质量：{task.quality}", flush=True)
        print(f"   并发：{task.concurrency}", flush=True)
        print(f"   文件：{total}", flush=True)
        print(f"{separator}", flush=True)
