"""
Image value type and format conversions.

- asset: ImageAsset, the immutable decoded image
- converters: bytes/NumPy/PIL conversions and color parsing
"""

from core.image.asset import ImageAsset

__all__ = ["ImageAsset"]
