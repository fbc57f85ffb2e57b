import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from uuid import uuid4

from ..core import errors

logger = logging.getLogger(__name__)


@dataclass
class AudioUpload:
    filename: str
    content_type: Optional[str]
    data: bytes


class AudioStorage:
    """Keeps uploaded cough recordings on the local filesystem, addressed by file name."""

    def __init__(self, root: str) -> None:
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        return self.root / key

    def save(self, upload: AudioUpload) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        suffix = Path(upload.filename or "").suffix.lower() or ".wav"
        key = f"audio-{int(time.time() * 1000)}-{uuid4().hex[:8]}{suffix}"
        try:
            self.path_for(key).write_bytes(upload.data)
        except OSError as exc:
            logger.exception("Could not store audio %s", key)
            raise errors.InternalError("Could not store the audio file.") from exc
        logger.info("Stored audio %s (%d bytes)", key, len(upload.data))
        return key

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("Audio %s already gone", key)
        except OSError as exc:
            logger.exception("Could not delete audio %s", key)
            raise errors.InternalError("Could not delete the audio file.") from exc
        else:
            logger.info("Deleted audio %s", key)
