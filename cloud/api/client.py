from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Type
from urllib.parse import quote

import requests
from pydantic import BaseModel, ValidationError

from device.errors import ClassificationError, DetailLookupError, WorkflowError

from .schemas import DetailRecord, PredictionResponse

logger = logging.getLogger(__name__)

DEFAULT_CLASSIFY_URL = "https://navpan2-testapinavn.hf.space"
DEFAULT_DETAIL_URL = "https://navpan2-sarva-ai-back.hf.space"
UPLOAD_FIELD_NAME = "file"


@dataclass
class DiagnosisHttpClient:
    """HTTP client for the classification and disease detail services."""

    classify_url: str = DEFAULT_CLASSIFY_URL
    detail_url: str = DEFAULT_DETAIL_URL
    timeout: float = 20.0
    session: requests.Session = field(default_factory=requests.Session)

    def classify(self, image_bytes: bytes, filename: str, mime_type: str) -> str:
        url = f"{self.classify_url.rstrip('/')}/predict"
        # requests sets the multipart/form-data boundary header itself.
        files = {UPLOAD_FIELD_NAME: (filename, image_bytes, mime_type)}
        logger.debug("POST %s file=%s bytes=%d", url, filename, len(image_bytes))
        data = self._send(
            "post", url, ClassificationError, "classification", files=files
        )
        result = self._parse(data, PredictionResponse, ClassificationError, "classification")
        return result.prediction

    def lookup_detail(self, label: str) -> DetailRecord:
        url = f"{self.detail_url.rstrip('/')}/disease/{quote(label, safe='')}"
        logger.debug("GET %s", url)
        data = self._send("get", url, DetailLookupError, "disease detail")
        return self._parse(data, DetailRecord, DetailLookupError, "disease detail")

    def _send(
        self,
        method: str,
        url: str,
        error_cls: Type[WorkflowError],
        what: str,
        **kwargs: Any,
    ) -> Any:
        try:
            response = self.session.request(method.upper(), url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.Timeout as exc:
            raise error_cls(f"Timed out waiting for {what} response") from exc
        except requests.RequestException as exc:
            raise error_cls(f"Failed to call {what} service: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise error_cls(f"Invalid JSON in {what} response") from exc

    @staticmethod
    def _parse(data: Any, model: Type[BaseModel], error_cls: Type[WorkflowError], what: str):
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise error_cls(f"Malformed {what} response: {exc.error_count()} invalid field(s)") from exc

    def close(self) -> None:
        self.session.close()


__all__ = [
    "DiagnosisHttpClient",
    "DEFAULT_CLASSIFY_URL",
    "DEFAULT_DETAIL_URL",
    "UPLOAD_FIELD_NAME",
]
