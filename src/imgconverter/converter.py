"""核心转换功能模块 - 文件分类、目录遍历、单文件编码器"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, Protocol

from PIL import Image

from . import worker
from .errors import CodecUnavailableError, ConversionError
from .sizing import calculate_target_size

logger = logging.getLogger(__name__)

# 可作为转换源的格式
SOURCE_TYPES = frozenset({"jpg", "jpeg", "png", "webp"})
TARGET_FORMATS = ("webp", "avif")


def bare_type(path: str | Path) -> str:
    """返回小写且去掉点号的扩展名，例如 a.PNG -> png；无扩展名返回空串"""
    return Path(path).suffix.lower().lstrip(".")


def is_supported_image(path: str | Path) -> bool:
    """扩展名是否属于支持的源图片格式（不区分大小写）"""
    return bare_type(path) in SOURCE_TYPES


def find_files(directory: str | Path, recursive: bool = False) -> list[Path]:
    """
    查找目录下所有可转换的图片

    Args:
        directory: 搜索目录
        recursive: 是否递归子目录（深度优先，按名称排序）

    Returns:
        文件路径列表

    Raises:
        OSError: 根目录（或递归时任一子目录）无法读取
    """
    directory = Path(directory)
    if recursive:
        return list(_walk(directory))
    return [f for f in sorted(directory.iterdir()) if not f.is_dir() and is_supported_image(f)]


def _walk(directory: Path) -> Iterator[Path]:
    for entry in sorted(directory.iterdir()):
        # 不跟随目录符号链接，避免循环
        if entry.is_dir() and not entry.is_symlink():
            yield from _walk(entry)
        elif not entry.is_dir() and is_supported_image(entry):
            yield entry


def get_output_path(path: Path, target_format: str, use_target_ext: bool) -> Path:
    """
    获取输出文件路径

    Args:
        path: 输入文件
        target_format: 输出格式 (webp/avif)
        use_target_ext: 是否使用目标格式扩展名，否则原地覆盖

    Returns:
        输出路径
    """
    if use_target_ext:
        return path.with_suffix(f".{target_format}")
    return path


class ImageCodec(Protocol):
    """单文件编码器，成功返回输出路径，失败抛出异常"""

    target_format: str

    def convert(self, path: Path, use_target_ext: bool, quality: int) -> Path:  # pragma: no cover - interface
        ...

    def convert_resized(
        self,
        path: Path,
        max_width: int,
        max_height: int,
        keep_original: bool,
        use_target_ext: bool,
        quality: int,
    ) -> Path:  # pragma: no cover - interface
        ...


class DisabledCodec:
    """不可用的编码器，所有转换都失败"""

    def __init__(self, target_format: str = "avif"):
        self.target_format = target_format

    def _unavailable(self) -> CodecUnavailableError:
        return CodecUnavailableError(f"{self.target_format.upper()}支持暂时不可用，请稍后再试")

    def convert(self, path: Path, use_target_ext: bool, quality: int) -> Path:
        raise self._unavailable()

    def convert_resized(
        self,
        path: Path,
        max_width: int,
        max_height: int,
        keep_original: bool,
        use_target_ext: bool,
        quality: int,
    ) -> Path:
        raise self._unavailable()


class PillowCodec:
    """基于 Pillow 的 WebP/AVIF 编码器，可在多线程中并发使用"""

    def __init__(self, target_format: str = "webp"):
        if target_format not in TARGET_FORMATS:
            raise ValueError(f"未知格式：{target_format}")
        self.target_format = target_format

    def convert(self, path: Path, use_target_ext: bool, quality: int) -> Path:
        return self._encode(Path(path), use_target_ext, quality, keep_original=True)

    def convert_resized(
        self,
        path: Path,
        max_width: int,
        max_height: int,
        keep_original: bool,
        use_target_ext: bool,
        quality: int,
    ) -> Path:
        return self._encode(
            Path(path),
            use_target_ext,
            quality,
            keep_original=keep_original,
            bounds=(max_width, max_height),
        )

    def _encode(
        self,
        inp: Path,
        use_target_ext: bool,
        quality: int,
        keep_original: bool,
        bounds: tuple[int, int] | None = None,
    ) -> Path:
        if not worker.supports(self.target_format):
            raise CodecUnavailableError(f"当前 Pillow 不支持 {self.target_format.upper()} 编码")
        if not 0 <= quality <= 100:
            raise ConversionError(f"质量超出范围 (0-100)：{quality}")

        out = get_output_path(inp, self.target_format, use_target_ext)

        # 先在 with 块内完成解码，避免原地覆盖时文件句柄冲突
        with Image.open(inp) as img:
            exif = img.info.get("exif")
            if img.mode in ("RGBA", "LA", "P"):
                rgb_img = img.convert("RGBA")
            elif img.mode != "RGB":
                rgb_img = img.convert("RGB")
            else:
                rgb_img = img.copy()

        with rgb_img:
            to_save = rgb_img
            if bounds is not None:
                size = calculate_target_size(rgb_img.width, rgb_img.height, *bounds)
                if size != (rgb_img.width, rgb_img.height):
                    to_save = rgb_img.resize((max(1, size.width), max(1, size.height)), Image.Resampling.LANCZOS)

            params = {"quality": quality}
            if exif:
                params["exif"] = exif
            # 先写临时文件，成功后再替换，失败时源文件和目标文件都不受影响
            tmp = out.with_name(out.name + ".tmp")
            try:
                to_save.save(tmp, format=self.target_format.upper(), **params)
                os.replace(tmp, out)
            finally:
                tmp.unlink(missing_ok=True)

        if not keep_original and out != inp:
            inp.unlink()

        logger.debug("已转换 %s -> %s", inp, out)
        return out


def create_codec(target_format: str, enabled: bool = True) -> ImageCodec:
    """按格式创建编码器"""
    if not enabled:
        return DisabledCodec(target_format)
    return PillowCodec(target_format)
