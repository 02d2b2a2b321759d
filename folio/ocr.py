"""Client for the remote OCR endpoint."""

from __future__ import annotations

import pathlib

import httpx

from .errors import InvalidImageError, TransformFailure
from .providers import DEFAULT_SERVICE_URL, DEFAULT_TIMEOUT_SECONDS

MAX_IMAGE_BYTES = 10 * 1024 * 1024
IMAGE_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}
DEFAULT_OCR_LANGUAGE = "eng"

STATUS_MESSAGES = {
    400: "Invalid image format",
    429: "Daily request limit reached (500 per IP)",
}


def check_image(image_path: pathlib.Path) -> str:
    """Validate an image before upload and return its media type."""

    media_type = IMAGE_MEDIA_TYPES.get(image_path.suffix.lower())
    if media_type is None:
        raise InvalidImageError("Unsupported file format. Please use JPG or PNG")
    if image_path.stat().st_size > MAX_IMAGE_BYTES:
        raise InvalidImageError("File size must not exceed 10MB")
    return media_type


class OcrClient:
    """Sends one image to ``/ocr`` and returns the recognised text."""

    def __init__(
        self,
        *,
        service_url: str = DEFAULT_SERVICE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self.endpoint = service_url.rstrip("/") + "/ocr"
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "OcrClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def recognise(
        self,
        image_path: pathlib.Path,
        language: str = DEFAULT_OCR_LANGUAGE,
    ) -> str:
        media_type = check_image(image_path)
        with image_path.open("rb") as handle:
            files = {"image": (image_path.name, handle, media_type)}
            try:
                response = self._client.post(
                    self.endpoint,
                    files=files,
                    data={"lang": language},
                )
            except httpx.HTTPError as exc:
                raise TransformFailure(f"OCR service unreachable: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success:
            raise TransformFailure(
                self._status_message(
                    response.status_code,
                    payload if isinstance(payload, dict) else {},
                ),
                detail=response.text,
            )

        if not isinstance(payload, dict):
            raise TransformFailure(
                "Invalid OCR service response",
                detail=response.text,
            )
        text = payload.get("text") or ""
        return text if isinstance(text, str) else ""

    @staticmethod
    def _status_message(status_code: int, payload: dict) -> str:
        if status_code in STATUS_MESSAGES:
            return STATUS_MESSAGES[status_code]
        if status_code == 500:
            return str(payload.get("error") or "Error processing image")
        return "Error communicating with OCR service"
