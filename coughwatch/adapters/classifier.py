"""
HTTP client for the external TB cough classifier.

The classifier answers asynchronously: it calls back into
``PATCH /coughs/detection`` with the record id once it has a verdict.
"""

import logging
import mimetypes
from pathlib import Path
from typing import Optional

import requests

from ..core.config import settings

logger = logging.getLogger(__name__)


class ClassifierClient:
    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = settings.classifier_url if url is None else url
        self.timeout = settings.classifier_timeout_seconds if timeout is None else timeout
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def classify(self, audio_path: str, submitter_name: str, record_id: str) -> None:
        """Uploads one recording. Raises on transport or HTTP errors."""
        if not self.enabled:
            logger.info("Classifier disabled, record %s stays ANALYZING", record_id)
            return
        path = Path(audio_path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        with path.open("rb") as fh:
            resp = self._session.post(
                self.url,
                files={"file": (path.name, fh, content_type)},
                data={"name": submitter_name, "record_id": record_id},
                timeout=self.timeout,
            )
        resp.raise_for_status()
        logger.info("Classifier accepted record %s (HTTP %s)", record_id, resp.status_code)
