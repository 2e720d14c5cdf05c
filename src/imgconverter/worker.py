"""工作线程初始化和信号处理"""

import logging
import signal
from threading import local

from PIL import Image

logger = logging.getLogger(__name__)

_thread_data = local()
_shutdown = False


def init_worker() -> None:
    """
    每个线程初始化一次 - 注册编码插件

    Pillow 自带 WebP 编码；AVIF 需要 Pillow 自带支持或 pillow-avif-plugin。
    """
    try:
        import pillow_avif  # noqa: F401
    except ImportError:
        pass

    Image.init()
    _thread_data.formats = set(Image.SAVE)
    _thread_data.initialized = True


def get_worker():
    """
    获取当前线程的工作器

    如果当前线程尚未初始化，会自动调用 init_worker()。

    Returns:
        记录了可用编码格式的线程本地对象
    """
    if not getattr(_thread_data, "initialized", False):
        init_worker()
    return _thread_data


def supports(fmt: str) -> bool:
    """当前线程是否能编码指定格式"""
    return fmt.upper() in get_worker().formats


def is_shutdown() -> bool:
    """检查是否已收到关闭信号"""
    return _shutdown


def setup_signal_handlers() -> None:
    """设置信号处理器"""
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)


def _signal_handler(signum, frame) -> None:
    """信号处理函数 - 当前批次跑完后停止"""
    global _shutdown
    _shutdown = True
    logger.warning("收到信号 %s，当前任务完成后停止", signum)
    print("\n⚠️  收到中断信号，当前任务完成后停止...", flush=True)
