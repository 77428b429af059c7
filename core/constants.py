"""
Constants and configuration values for the image transform service.
Centralizes all magic numbers and default parameters.
"""


# Image Handling Constants
class ImageConstants:
    """Constants related to decoding, encoding and sizing."""

    # Encoding
    JPEG_QUALITY = 90
    WEBP_QUALITY = 90
    PNG_COMPRESSION = 6
    PNG_COMPRESSION_MAX = 9

    # Thumbnails
    THUMBNAIL_JPEG_QUALITY = 85
    DEFAULT_THUMBNAIL_SIZES = [
        {"width": 150, "height": 150, "suffix": "thumb"},
        {"width": 300, "height": 300, "suffix": "medium"},
        {"width": 600, "height": 600, "suffix": "large"},
    ]


# Upload Constants
class UploadConstants:
    """Constants for multipart uploads."""

    MAX_UPLOAD_SIZE_MB = 10
    MAX_COLLAGE_IMAGES = 20
    MAX_CHANNEL_IMAGES = 4
    ALLOWED_MATTING_MIME_TYPES = [
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "image/gif",
        "image/bmp",
    ]


# Collage Defaults
class CollageDefaults:
    """Default parameters for collage creation."""

    SPACING = 10
    BACKGROUND_COLOR = "#ffffff"


# Mask Defaults
class MaskDefaults:
    """Default parameters for procedural masks."""

    BACKGROUND_COLOR = "#ffffff"
    STAR_POINTS = 10
    STAR_INNER_RATIO = 0.5


# Background Removal Defaults
class BackgroundRemovalDefaults:
    """Default parameters for heuristic background removal."""

    # 3x3 Laplacian high-pass kernel
    EDGE_KERNEL = [
        [-1, -1, -1],
        [-1, 8, -1],
        [-1, -1, -1],
    ]

    THRESHOLD = 128
    EDGE_THRESHOLD = 50
    DEFAULT_METHOD_BLUR = 1.0
    DEFAULT_METHOD_THRESHOLD = 30

    COLOR_KEY = "#ffffff"
    COLOR_TOLERANCE = 10

    SMART_EDGE_DETECTION = True
    SMART_COLOR_THRESHOLD = 50
    SMART_BLUR = 1
    SMART_FEATHER = 2


# Matting Model Defaults
class MattingDefaults:
    """Defaults for ML-based background removal."""

    OUTPUT_FORMAT = "image/png"
    QUALITY = 0.8
    MODEL = "medium"
    MODEL_NAMES = {
        "small": "u2netp",
        "medium": "u2net",
        "large": "isnet-general-use",
    }
    URL_FETCH_TIMEOUT_SECONDS = 30.0


# Watermark Defaults
class WatermarkDefaults:
    """Default parameters for text watermarks."""

    FONT_SIZE = 48
    FONT_FAMILY = "Arial"
    COLOR = "#ffffff"
    OPACITY = 0.7
    POSITION = "southeast"
    CANVAS_WIDTH = 400
    CANVAS_HEIGHT = 100


# Transform Defaults
class TransformDefaults:
    """Defaults for geometric and color transforms."""

    ROTATE_BACKGROUND = "#ffffff"
    BORDER_COLOR = "#000000"
    PIPELINE_BLUR_SIGMA = 2.0
    NORMALIZE_LOWER_PERCENTILE = 1.0
    NORMALIZE_UPPER_PERCENTILE = 99.0


# Error Messages
class ErrorMessages:
    """Standard error messages."""

    NO_FILE = "No file uploaded"
    EMPTY_FILE = "Uploaded file is empty"
    UNSUPPORTED_FORMAT = "Unsupported output format: {format}"
    FILE_TOO_LARGE = "File size too large. Maximum size is {max_mb}MB"
    INVALID_MIME_TYPE = "Invalid file type. Allowed types: {allowed}"
    INVALID_FILENAME = "Invalid filename: {filename}"
    COLLAGE_EMPTY = "Please upload at least one image"
    COMPOSITE_COUNT = "Please upload exactly 2 images (base and overlay)"
    CHANNEL_JOIN_COUNT = "At least 2 channel images are required"
    WATERMARK_TEXT_REQUIRED = "Watermark text is required"
    PIPELINE_EMPTY = "At least one operation is required"
    UNKNOWN_OPERATION = "Unknown operation: {name}"
    INVALID_COLOR = "Invalid color value: {value}"
    URL_NOT_ALLOWED = "URL not allowed: {url}"
