"""
Decoded image value object.

An ImageAsset wraps a NumPy pixel buffer in OpenCV channel order
(greyscale, BGR or BGRA). The buffer is marked read-only so transforms
always produce a new asset instead of mutating a caller's image.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np


@dataclass(frozen=True, eq=False)
class ImageAsset:
    """Immutable decoded image plus metadata"""

    pixels: np.ndarray
    format: Optional[str] = None
    colorspace: str = "srgb"
    density: Optional[float] = None
    source_size: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        if self.pixels.ndim not in (2, 3):
            raise ValueError(f"Unsupported pixel buffer shape: {self.pixels.shape}")
        if self.pixels.flags.writeable:
            frozen = self.pixels.copy()
            frozen.setflags(write=False)
            object.__setattr__(self, "pixels", frozen)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @property
    def has_alpha(self) -> bool:
        return self.channels in (2, 4)

    @property
    def size(self) -> tuple:
        """(width, height)"""
        return self.width, self.height

    def with_pixels(self, pixels: np.ndarray, **changes) -> "ImageAsset":
        """Derive a new asset from transformed pixels, keeping metadata."""
        values = {
            "format": self.format,
            "colorspace": self.colorspace,
            "density": self.density,
            "source_size": self.source_size,
        }
        values.update(changes)
        return ImageAsset(pixels=pixels, **values)

    def writable_pixels(self) -> np.ndarray:
        """Return a mutable copy of the pixel buffer."""
        return self.pixels.copy()

    def metadata(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "width": self.width,
            "height": self.height,
            "channels": self.channels,
            "density": self.density,
            "has_alpha": self.has_alpha,
            "size": self.source_size,
        }
