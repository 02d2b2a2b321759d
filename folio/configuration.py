"""Prepper-backed configuration loader for Folio."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Literal, Mapping, Sequence

from dotenv import dotenv_values
from prepper import (
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import ConfigurationError
from .layout import validate_geometry
from .segmenter import minimum_budget
from .structures import PageGeometry

APP_NAME = "Folio"

PROVIDER_SYNONYMS = {
    "service": "http",
    "default": "http",
    "azure_open_ai": "azure_openai",
    "azureopenai": "azure_openai",
    "azure": "azure_openai",
    "noop": "echo",
    "mock": "echo",
}


class FolioConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    FOLIO_PROVIDER: Literal["http", "openai", "azure_openai", "echo"] = Field(
        default="http",
        description="Which transform translates each segment.",
    )
    FOLIO_SERVICE_URL: str = Field(
        default="http://localhost:5001",
        description="Base URL of the translation/OCR service.",
    )
    FOLIO_TIMEOUT_SECONDS: float = Field(default=60.0)
    FOLIO_MAX_RETRIES: int = Field(default=0)
    FOLIO_BYTE_BUDGET: int = Field(
        default=9000,
        description="Maximum encoded size of one request segment.",
    )
    FOLIO_TEXT_ENCODING: str = Field(default="utf-8")

    FOLIO_PAGE_WIDTH: float = Field(default=612)
    FOLIO_PAGE_HEIGHT: float = Field(default=794)
    FOLIO_TOP_MARGIN: float = Field(default=70)
    FOLIO_BOTTOM_MARGIN: float = Field(default=60)
    FOLIO_LEFT_ORIGIN: float = Field(default=60)
    FOLIO_LINE_HEIGHT: float = Field(default=14)
    FOLIO_FONT_SIZE: float = Field(default=12)

    AZURE_OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    AZURE_OPENAI_ENDPOINT: str | None = Field(default=None)
    AZURE_OPENAI_API_VERSION: str | None = Field(default=None)
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = Field(default=None)
    OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    FOLIO_PROVIDER_DEBUG: bool = Field(default=False)

    @model_validator(mode="before")
    def _normalise_provider(data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("FOLIO_PROVIDER")
            if isinstance(raw_value, str):
                normalized = raw_value.strip().lower().replace("-", "_")
                data["FOLIO_PROVIDER"] = PROVIDER_SYNONYMS.get(normalized, normalized)
        return data


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Load configuration layers once and cache the immutable instance."""

    base_dir = app_dir or Path.cwd()
    try:
        provenance = ProvenanceRecorder()
        combined = _load_discovered_yaml(app_dir=base_dir, provenance=provenance)
        _merge_env_sources(
            combined,
            provenance=provenance,
            app_dir=base_dir,
            schema=FolioConfig,
        )

        model = FolioConfig.validate(combined, provenance=provenance)
        validate_settings(model)

        return ConfigInstance(
            model=model,
            provenance=provenance,
            env_prefix=None,
            schema_cls=FolioConfig,
        )
    except IoError as exc:
        raise ConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise ConfigurationError(f"Configuration schema error: {exc}") from exc
    except ValidationError as exc:
        issues = _format_validation_errors(exc.to_dict())
        raise ConfigurationError(issues) from exc


def _load_discovered_yaml(
    *,
    app_dir: Path,
    provenance: ProvenanceRecorder,
) -> dict[str, Any]:
    """Load YAML configuration files using Prepper's discovery rules."""

    result: dict[str, Any] = {}
    discovered = discover_file_paths(
        APP_NAME,
        "yaml",
        app_dir=app_dir,
        extra_paths=None,
    )
    for path, label in discovered:
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        source = _path_to_source(label, "yaml", path)
        merge_layer(result, parsed, provenance=provenance, source=source, layer="file")
    return result


def _merge_env_sources(
    target: dict[str, Any],
    *,
    provenance: ProvenanceRecorder,
    app_dir: Path,
    schema: type[SchemaModel],
) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(schema.__field_infos__.keys())

    def merge_values(values: Mapping[str, str], *, source_prefix: str) -> None:
        for key, value in sorted(values.items()):
            if value is None or key not in allowed:
                continue
            merge_layer(
                target,
                {key: value},
                provenance=provenance,
                source=f"env:{source_prefix}:{key}",
                layer="env",
            )

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        dotenv_content = dotenv_values(dotenv_path)
        merge_values(
            {k: v for k, v in dotenv_content.items() if v is not None},
            source_prefix=".env",
        )

    merge_values(
        {k: v for k, v in os.environ.items() if isinstance(v, str)},
        source_prefix="process",
    )


def geometry_from_settings(settings: FolioConfig) -> PageGeometry:
    return PageGeometry(
        width=settings.FOLIO_PAGE_WIDTH,
        height=settings.FOLIO_PAGE_HEIGHT,
        top_margin=settings.FOLIO_TOP_MARGIN,
        bottom_margin=settings.FOLIO_BOTTOM_MARGIN,
        left_origin=settings.FOLIO_LEFT_ORIGIN,
        line_height=settings.FOLIO_LINE_HEIGHT,
        font_size=settings.FOLIO_FONT_SIZE,
    )


def validate_settings(settings: FolioConfig) -> None:
    """Cross-field checks the schema cannot express on its own."""

    provider = settings.FOLIO_PROVIDER
    errors: list[str] = []

    if provider == "openai" and not settings.OPENAI_API_KEY:
        errors.append("OPENAI_API_KEY is required when FOLIO_PROVIDER is 'openai'.")
    elif provider == "azure_openai":
        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": settings.AZURE_OPENAI_API_KEY,
                "AZURE_OPENAI_ENDPOINT": settings.AZURE_OPENAI_ENDPOINT,
                "AZURE_OPENAI_API_VERSION": settings.AZURE_OPENAI_API_VERSION,
                "AZURE_OPENAI_DEPLOYMENT_NAME": settings.AZURE_OPENAI_DEPLOYMENT_NAME,
            }.items()
            if not value
        ]
        if missing:
            errors.append(
                "The following Azure OpenAI settings must be provided when "
                f"FOLIO_PROVIDER is 'azure_openai': {', '.join(missing)}."
            )

    if settings.FOLIO_MAX_RETRIES < 0:
        errors.append("FOLIO_MAX_RETRIES must not be negative.")
    if settings.FOLIO_TIMEOUT_SECONDS <= 0:
        errors.append("FOLIO_TIMEOUT_SECONDS must be positive.")

    try:
        floor = minimum_budget(settings.FOLIO_TEXT_ENCODING)
    except ConfigurationError as exc:
        errors.append(str(exc))
    else:
        if settings.FOLIO_BYTE_BUDGET < floor:
            errors.append(
                f"FOLIO_BYTE_BUDGET must be at least {floor} bytes for "
                f"{settings.FOLIO_TEXT_ENCODING}."
            )

    try:
        validate_geometry(geometry_from_settings(settings))
    except ConfigurationError as exc:
        errors.append(str(exc))

    if errors:
        raise ConfigurationError(
            _validation_message(f"- {message}" for message in errors)
        )


def _format_validation_errors(entries: Sequence[dict[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        source = entry.get("source")
        origin = f" (source: {source})" if source else ""
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}{origin}")
    return _validation_message(details)


def _validation_message(bullets: Iterable[str]) -> str:
    return "Configuration validation errors detected:\n" + "\n".join(bullets)


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> FolioConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()
