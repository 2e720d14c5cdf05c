"""
图片批量转换器 - JPG/PNG/WebP 转 WebP/AVIF

示例用法:
    from imgconverter import BatchConverter, PillowCodec

    converter = BatchConverter(PillowCodec("webp"))

    # 文件列表，部分失败时 result.error 汇总所有失败
    result = converter.convert_many(["a.jpg", "b.png"], concurrency=4, quality=80)

    # 整个目录，只返回成功数量
    count = converter.convert_directory("/path/to/photos", recursive=True)
"""

__version__ = "0.1.0"

from .batch import BatchConverter, BatchResult, ConversionJob, ConversionOutcome
from .converter import (
    DisabledCodec,
    ImageCodec,
    PillowCodec,
    bare_type,
    create_codec,
    find_files,
    is_supported_image,
)
from .errors import (
    BatchConversionError,
    CodecUnavailableError,
    ConversionError,
    ImageConverterError,
    PayloadError,
)
from .sizing import Dimensions, calculate_target_size

__all__ = [
    "__version__",
    "BatchConverter",
    "BatchResult",
    "ConversionJob",
    "ConversionOutcome",
    "DisabledCodec",
    "ImageCodec",
    "PillowCodec",
    "bare_type",
    "create_codec",
    "find_files",
    "is_supported_image",
    "BatchConversionError",
    "CodecUnavailableError",
    "ConversionError",
    "ImageConverterError",
    "PayloadError",
    "Dimensions",
    "calculate_target_size",
]
