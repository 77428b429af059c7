"""
Centralized enums for the image transform service.

String-valued enums so they serialize directly into JSON and parse
from form fields.
"""

from enum import Enum


class OutputFormat(str, Enum):
    """Encodings the service can produce"""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"

    @property
    def extension(self) -> str:
        return "jpg" if self == OutputFormat.JPEG else self.value


class MaskShape(str, Enum):
    CIRCLE = "circle"
    ROUNDED = "rounded"
    STAR = "star"


class BackgroundMethod(str, Enum):
    THRESHOLD = "threshold"
    EDGE = "edge"
    COLOR = "color"
    DEFAULT = "default"
    SMART = "smart"


class MattingModelSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class FilterKind(str, Enum):
    BLUR = "blur"
    SHARPEN = "sharpen"
    GREYSCALE = "greyscale"
    BRIGHTNESS = "brightness"
    CONTRAST = "contrast"
    NORMALIZE = "normalize"
    NEGATE = "negate"


class ColorAdjustKind(str, Enum):
    TINT = "tint"
    GAMMA = "gamma"
    NEGATE = "negate"
    NORMALIZE = "normalize"


class Colorspace(str, Enum):
    SRGB = "srgb"
    RGB16 = "rgb16"
    CMYK = "cmyk"
    LAB = "lab"
    BW = "b-w"


class FlipAxis(str, Enum):
    """Flip direction.

    VERTICAL mirrors top-to-bottom ("flip"), HORIZONTAL mirrors
    left-to-right ("flop").
    """

    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"
    BOTH = "both"


class ChannelOpKind(str, Enum):
    REMOVE_ALPHA = "remove-alpha"
    ENSURE_ALPHA = "ensure-alpha"
    EXTRACT_RED = "extract-red"
    EXTRACT_GREEN = "extract-green"
    EXTRACT_BLUE = "extract-blue"
    EXTRACT_ALPHA = "extract-alpha"
    BANDBOOL_AND = "bandbool-and"
    BANDBOOL_OR = "bandbool-or"
    BANDBOOL_EOR = "bandbool-eor"


class Channel(str, Enum):
    RED = "red"
    GREEN = "green"
    BLUE = "blue"
    ALPHA = "alpha"


class BandBoolOperation(str, Enum):
    AND = "and"
    OR = "or"
    EOR = "eor"


class Gravity(str, Enum):
    NORTH = "north"
    NORTHEAST = "northeast"
    EAST = "east"
    SOUTHEAST = "southeast"
    SOUTH = "south"
    SOUTHWEST = "southwest"
    WEST = "west"
    NORTHWEST = "northwest"
    CENTER = "center"
    CENTRE = "centre"


class BlendMode(str, Enum):
    """Compositing operators.

    The first group are Porter-Duff operators, the second are separable
    blend modes applied with source-over coverage.
    """

    CLEAR = "clear"
    SOURCE = "source"
    OVER = "over"
    IN = "in"
    OUT = "out"
    ATOP = "atop"
    DEST = "dest"
    DEST_OVER = "dest-over"
    DEST_IN = "dest-in"
    DEST_OUT = "dest-out"
    DEST_ATOP = "dest-atop"
    XOR = "xor"
    ADD = "add"

    MULTIPLY = "multiply"
    SCREEN = "screen"
    OVERLAY = "overlay"
    DARKEN = "darken"
    LIGHTEN = "lighten"
    COLOR_DODGE = "color-dodge"
    COLOR_BURN = "color-burn"
    HARD_LIGHT = "hard-light"
    SOFT_LIGHT = "soft-light"
    DIFFERENCE = "difference"
    EXCLUSION = "exclusion"


class ResizeFit(str, Enum):
    FILL = "fill"
    COVER = "cover"
    INSIDE = "inside"


class UnknownOperationPolicy(str, Enum):
    """What the pipeline executor does with an operation it cannot resolve"""

    FAIL = "fail"
    SKIP = "skip"
