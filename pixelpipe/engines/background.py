"""Background removal collaborator backed by rembg."""

import threading

from pixelpipe.core.logging import get_logger
from pixelpipe.engines.base import IBackgroundRemover

logger = get_logger(__name__)


class RembgBackgroundRemover(IBackgroundRemover):
    """
    Removes backgrounds with a rembg model session.

    The ONNX session is created on first use and reused for every call
    (loading it per request costs seconds).
    """

    def __init__(self, model_name: str = "u2net"):
        self.model_name = model_name
        self._session = None
        self._lock = threading.Lock()

    def _get_session(self):
        with self._lock:
            if self._session is None:
                # Lazy import: rembg pulls in onnxruntime
                from rembg import new_session

                self._session = new_session(self.model_name)
                logger.info("rembg_session_loaded", model=self.model_name)
            return self._session

    def remove(self, data: bytes) -> bytes:
        from rembg import remove

        return remove(data, session=self._get_session())
