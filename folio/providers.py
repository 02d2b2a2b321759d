"""Translation provider abstractions."""

from __future__ import annotations

import json
import sys
import time
from abc import ABC, abstractmethod
from typing import Any, Sequence

import httpx

from .errors import ConfigurationError, TransformFailure
from .structures import TransformContext

DEFAULT_SERVICE_URL = "http://localhost:5001"
DEFAULT_TIMEOUT_SECONDS = 60.0


def _debug_print(label: str, payload: Any) -> None:
    try:
        if isinstance(payload, (dict, list)):
            message = json.dumps(payload, ensure_ascii=False, indent=2)
        else:
            message = str(payload)
    except (TypeError, ValueError):
        message = repr(payload)
    print(f"[folio][provider-debug] {label}:\n{message}", file=sys.stderr)


class TranslationProvider(ABC):
    """Abstract adapter for the per-segment transform."""

    name = "abstract"
    debug = False

    @abstractmethod
    def translate(self, text: str, *, context: TransformContext) -> str:
        """Translate one segment and return the translated text."""

    def __call__(self, text: str, context: TransformContext) -> str:
        return self.translate(text, context=context)

    def close(self) -> None:
        """Release network resources held by the provider."""

    def __enter__(self) -> "TranslationProvider":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if self.debug:
            _debug_print(label, payload)


class EchoTranslationProvider(TranslationProvider):
    """A provider that returns the original text (useful for testing)."""

    name = "echo"

    def translate(self, text: str, *, context: TransformContext) -> str:
        return text


class HttpTranslationProvider(TranslationProvider):
    """Client for the remote ``/translate`` endpoint.

    The service takes form fields ``text``, ``source_lang`` and
    ``target_lang`` and answers ``{"translated_text": "..."}``. Anything
    else, including an empty translation, is a :class:`TransformFailure`.
    Retries, when enabled, happen here and never in the pipeline.
    """

    name = "http"
    retry_backoff: Sequence[float] = (1, 4, 9)

    def __init__(
        self,
        *,
        service_url: str = DEFAULT_SERVICE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = 0,
        debug: bool = False,
        client: httpx.Client | None = None,
    ) -> None:
        self.endpoint = service_url.rstrip("/") + "/translate"
        self.max_retries = max(0, max_retries)
        self.debug = debug
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def translate(self, text: str, *, context: TransformContext) -> str:
        attempt = 0
        while True:
            try:
                return self._request(text, context)
            except TransformFailure as exc:
                attempt += 1
                if attempt > self.max_retries:
                    raise
                wait_time = self.retry_backoff[
                    min(attempt - 1, len(self.retry_backoff) - 1)
                ]
                print(
                    "Could not translate one segment "
                    f"(attempt {attempt} of {self.max_retries + 1}: {exc}). "
                    "Retrying automatically..."
                )
                time.sleep(wait_time)

    def _request(self, text: str, context: TransformContext) -> str:
        form = {
            "text": text,
            "source_lang": context.source_language or "auto",
            "target_lang": context.target_language,
        }
        self._log_debug("provider.request.form", form)
        try:
            response = self._client.post(self.endpoint, data=form)
        except httpx.HTTPError as exc:
            raise TransformFailure(
                f"Translation service unreachable: {exc}"
            ) from exc

        self._log_debug("provider.response.status", response.status_code)
        if not response.is_success:
            raise TransformFailure(
                f"Translation error: {response.text}",
                detail=response.text,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransformFailure(
                "Invalid translation service response",
                detail=response.text,
            ) from exc
        self._log_debug("provider.response.payload", payload)

        translated = payload.get("translated_text") if isinstance(payload, dict) else None
        if not isinstance(translated, str) or not translated:
            raise TransformFailure(
                "Invalid translation service response",
                detail=response.text,
            )
        return translated


class OpenAITranslationProvider(TranslationProvider):
    """Translation provider that uses OpenAI (or Azure OpenAI) models."""

    name = "openai"
    DEFAULT_MODEL = "gpt-5-mini"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        azure_endpoint: str | None = None,
        azure_api_version: str | None = None,
        azure_deployment: str | None = None,
        debug: bool = False,
        client: Any = None,
    ) -> None:
        self.debug = debug
        if client is not None:
            self._client, self._default_model = client, self.DEFAULT_MODEL
        elif azure_endpoint:
            self.name = "azure_openai"
            self._client, self._default_model = self._build_azure_client(
                api_key=api_key,
                endpoint=azure_endpoint,
                api_version=azure_api_version,
                deployment_name=azure_deployment,
            )
        else:
            self._client, self._default_model = self._build_openai_client(api_key)

    def _build_openai_client(self, api_key: str | None) -> tuple[Any, str]:
        if not api_key:
            raise ConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        try:
            from openai import OpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise ConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        return OpenAI(api_key=api_key), self.DEFAULT_MODEL

    def _build_azure_client(
        self,
        *,
        api_key: str | None,
        endpoint: str,
        api_version: str | None,
        deployment_name: str | None,
    ) -> tuple[Any, str]:
        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": api_key,
                "AZURE_OPENAI_API_VERSION": api_version,
                "AZURE_OPENAI_DEPLOYMENT_NAME": deployment_name,
            }.items()
            if not value
        ]
        if missing:
            raise ConfigurationError(
                "Azure OpenAI configuration incomplete. Please set: "
                + ", ".join(missing)
                + "."
            )

        try:
            from openai import AzureOpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise ConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        client = AzureOpenAI(
            api_key=api_key,
            api_version=api_version,
            azure_endpoint=endpoint,
        )
        return client, deployment_name  # type: ignore[return-value]

    def close(self) -> None:
        closer = getattr(self._client, "close", None)
        if callable(closer):
            closer()

    def translate(self, text: str, *, context: TransformContext) -> str:
        source = context.source_language or "the detected source language"
        system_prompt = (
            "You are a professional translator. "
            f"Translate the user's text from {source} into {context.target_language}. "
            "Preserve line breaks, numbers, and punctuation. "
            "Return only the translated text without commentary or code fences."
        )
        self._log_debug("provider.request.system_prompt", system_prompt)
        self._log_debug("provider.request.text", text)

        try:
            response = self._client.responses.create(
                model=context.model or self._default_model,
                input=[
                    {
                        "role": "system",
                        "content": [{"type": "input_text", "text": system_prompt}],
                    },
                    {
                        "role": "user",
                        "content": [{"type": "input_text", "text": text}],
                    },
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise TransformFailure(
                f"Translation service temporarily unavailable: {exc}"
            ) from exc

        translated = self._extract_text(response)
        self._log_debug("provider.response.text", translated)
        if not translated.strip():
            raise TransformFailure(
                "Translation provider response empty or unrecognised."
            )
        return translated

    def _extract_text(self, response: Any) -> str:
        """Pull the plain output text out of a Responses API result."""

        output_text = getattr(response, "output_text", None)
        if hasattr(output_text, "value"):
            output_text = output_text.value
        if output_text:
            return self._strip_code_fence(str(output_text))

        parts: list[str] = []
        for item in getattr(response, "output", None) or []:
            for part in getattr(item, "content", None) or []:
                text_value = getattr(part, "text", None)
                if hasattr(text_value, "value"):
                    text_value = text_value.value
                if text_value:
                    parts.append(str(text_value))
        return self._strip_code_fence("".join(parts))

    def _strip_code_fence(self, text: str) -> str:
        """Remove markdown code fences if present; other text is kept as is."""

        stripped = text.strip()
        if not stripped.startswith("```"):
            return text

        first_newline = stripped.find("\n")
        if first_newline == -1:
            return stripped
        body = stripped[first_newline + 1 :]
        closing_index = body.rfind("```")
        if closing_index != -1:
            body = body[:closing_index]
        # the newline before the closing fence belongs to the fence
        return body[:-1] if body.endswith("\n") else body


def build_provider(
    name: str | None,
    *,
    service_url: str = DEFAULT_SERVICE_URL,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    max_retries: int = 0,
    openai_api_key: str | None = None,
    azure_api_key: str | None = None,
    azure_endpoint: str | None = None,
    azure_api_version: str | None = None,
    azure_deployment: str | None = None,
    debug: bool = False,
) -> TranslationProvider:
    """Factory to create providers by name."""

    normalized = (name or "http").strip().lower().replace("-", "_")
    if normalized in {"http", "service", "default"}:
        return HttpTranslationProvider(
            service_url=service_url,
            timeout=timeout,
            max_retries=max_retries,
            debug=debug,
        )
    if normalized in {"openai", "gpt"}:
        return OpenAITranslationProvider(api_key=openai_api_key, debug=debug)
    if normalized in {"azure_openai", "azure"}:
        if not azure_endpoint:
            raise ConfigurationError(
                "Azure OpenAI configuration incomplete. Please set: "
                "AZURE_OPENAI_ENDPOINT."
            )
        return OpenAITranslationProvider(
            api_key=azure_api_key,
            azure_endpoint=azure_endpoint,
            azure_api_version=azure_api_version,
            azure_deployment=azure_deployment,
            debug=debug,
        )
    if normalized in {"echo", "noop", "mock"}:
        return EchoTranslationProvider()
    raise ConfigurationError(f"Unknown translation provider '{name}'.")
