"""尺寸计算 - 保持宽高比，不放大"""

from typing import NamedTuple

# 未指定最大尺寸时的默认值
LANDSCAPE_BOUNDS = (1280, 720)
PORTRAIT_BOUNDS = (600, 900)


class Dimensions(NamedTuple):
    width: int
    height: int


def calculate_target_size(
    original_width: int,
    original_height: int,
    max_width: int = 0,
    max_height: int = 0,
) -> Dimensions:
    """
    计算目标尺寸，保持宽高比

    Args:
        original_width: 原始宽度
        original_height: 原始高度
        max_width: 最大宽度 (<=0 表示按方向自动选择)
        max_height: 最大高度 (<=0 表示按方向自动选择)

    Returns:
        目标尺寸，任一边都不超过最大值，也不超过原始尺寸
    """
    if max_width <= 0 or max_height <= 0:
        if original_width > original_height:
            max_width, max_height = LANDSCAPE_BOUNDS
        else:
            max_width, max_height = PORTRAIT_BOUNDS

    width_ratio = max_width / original_width
    height_ratio = max_height / original_height

    # 取较小比例，保证两边都能放下；已经够小的图片保持原尺寸
    scale = min(width_ratio, height_ratio, 1.0)

    return Dimensions(int(original_width * scale), int(original_height * scale))
