"""
ML subject segmentation (matting) adapter.

The matting model is opaque: encoded image bytes go in, PNG bytes with an
alpha channel come out. RembgMattingModel backs it with rembg, imported
lazily so the service runs without the optional dependency until a
matting request arrives.
"""

import logging
import threading
from typing import Any, Dict, Protocol, runtime_checkable

from core.constants import MattingDefaults
from core.enums import MattingModelSize
from core.exceptions import MattingUnavailableError, ProcessingError

logger = logging.getLogger(__name__)


@runtime_checkable
class MattingModel(Protocol):
    def remove_background(self, data: bytes, model: MattingModelSize) -> bytes:  # pragma: no cover
        ...


class RembgMattingModel:
    """rembg-backed matting with one cached session per model"""

    def __init__(self):
        self._sessions: Dict[str, Any] = {}
        self._lock = threading.Lock()

    @staticmethod
    def model_name(model: MattingModelSize) -> str:
        return MattingDefaults.MODEL_NAMES[MattingModelSize(model).value]

    def _get_session(self, model: MattingModelSize):
        name = self.model_name(model)
        with self._lock:
            session = self._sessions.get(name)
            if session is None:
                try:
                    from rembg import new_session
                except ImportError as e:
                    raise MattingUnavailableError(
                        "rembg is not installed; install the 'matting' extra",
                        operation="matting",
                    ) from e
                logger.info(f"Loading matting model '{name}'")
                session = new_session(name)
                self._sessions[name] = session
        return session

    def remove_background(self, data: bytes, model: MattingModelSize) -> bytes:
        session = self._get_session(model)
        from rembg import remove

        try:
            result = remove(data, session=session)
        except Exception as e:
            logger.error(f"Matting model '{self.model_name(model)}' failed: {e}")
            raise ProcessingError(str(e), operation="matting") from e
        return result
