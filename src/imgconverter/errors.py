"""异常定义"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .batch import BatchResult


class ImageConverterError(Exception):
    """所有转换器异常的基类"""


class ConversionError(ImageConverterError):
    """单个文件转换失败"""


class CodecUnavailableError(ConversionError):
    """编码器当前不可用"""


class PayloadError(ImageConverterError, ValueError):
    """JSON 路径列表格式错误"""


class BatchConversionError(ImageConverterError):
    """批量转换中有文件失败，携带部分成功的结果"""

    def __init__(self, result: "BatchResult"):
        super().__init__(result.error or "")
        self.result = result
