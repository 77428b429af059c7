"""
Exception types for the image transform service.

Three error classes reach clients:
- InputValidationError -> 400 (client fault, raised before processing)
- ProcessingError      -> 500 (engine or algorithm failure, wrapped with the operation name)
- AssetNotFoundError   -> 404 (retrieval of a missing output)
"""

from typing import Any, Dict, List, Optional


class ImageServiceError(Exception):
    """Base exception for the image transform service"""

    status_code = 500
    error = "Image service error"

    def __init__(self, message: str, operation: Optional[str] = None):
        self.message = message
        self.operation = operation
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {"error": self.error, "detail": self.message}
        if self.operation:
            content["operation"] = self.operation
        return content


class InputValidationError(ImageServiceError):
    """Request rejected before any processing began"""

    status_code = 400
    error = "Invalid request"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message, operation)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        content = super().to_dict()
        if self.errors:
            content["errors"] = self.errors
        return content


class ProcessingError(ImageServiceError):
    """A raster primitive or a processing step failed"""

    status_code = 500
    error = "Processing failed"

    def __init__(self, message: str, operation: Optional[str] = None):
        if operation and not message.startswith(operation):
            message = f"{operation} failed: {message}"
        super().__init__(message, operation)


class MattingUnavailableError(ProcessingError):
    """The segmentation model backend cannot be loaded"""

    status_code = 503
    error = "Matting model unavailable"


class AssetNotFoundError(ImageServiceError):
    """Requested output file does not exist"""

    status_code = 404
    error = "File not found"

    def __init__(self, filename: str):
        super().__init__(f"File not found: {filename}")
        self.filename = filename
