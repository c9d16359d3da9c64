from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

PACKAGE_DIR = Path(__file__).parent

T = TypeVar("T")


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if not raw:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env(name) or default)
    except ValueError:
        return default


def _resolve_data_dir() -> Path:
    override = _env("TORCHLIGHT_DATA_DIR")
    if override:
        return Path(override).expanduser().resolve()
    return PACKAGE_DIR / "data"


class Settings(BaseModel):
    data_dir: Path = Field(default_factory=_resolve_data_dir)
    database_url: str = Field(default_factory=lambda: _env("TORCHLIGHT_DATABASE_URL"))
    store_enabled: bool = Field(default_factory=lambda: _env_bool("TORCHLIGHT_STORE_ENABLED", True))

    pdf_enabled: bool = Field(default_factory=lambda: _env_bool("TORCHLIGHT_PDF_ENABLED", True))
    browser_executable: str = Field(default_factory=lambda: _env("TORCHLIGHT_BROWSER_EXECUTABLE"))
    launch_timeout: float = Field(default_factory=lambda: _env_float("TORCHLIGHT_LAUNCH_TIMEOUT", 10.0))
    render_timeout: float = Field(default_factory=lambda: _env_float("TORCHLIGHT_RENDER_TIMEOUT", 30.0))
    close_timeout: float = Field(default_factory=lambda: _env_float("TORCHLIGHT_CLOSE_TIMEOUT", 5.0))

    submit_export_timeout: float = Field(
        default_factory=lambda: _env_float("TORCHLIGHT_SUBMIT_EXPORT_TIMEOUT", 30.0)
    )
    generate_export_timeout: float = Field(
        default_factory=lambda: _env_float("TORCHLIGHT_GENERATE_EXPORT_TIMEOUT", 30.0)
    )
    persist_timeout: float = Field(default_factory=lambda: _env_float("TORCHLIGHT_PERSIST_TIMEOUT", 10.0))

    cors_origins: list[str] = Field(
        default_factory=lambda: [o.strip() for o in _env("TORCHLIGHT_CORS_ORIGINS", "*").split(",") if o.strip()]
    )
    log_level: str = Field(default_factory=lambda: _env("TORCHLIGHT_LOG_LEVEL", "INFO").upper())
    host: str = Field(default_factory=lambda: _env("TORCHLIGHT_HOST", "127.0.0.1"))
    port: int = Field(default_factory=lambda: int(_env_float("TORCHLIGHT_PORT", 3001)))

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir / 'torchlight.db'}"

    def ensure_directories(self) -> None:
        if self.resolved_database_url.startswith("sqlite:///") and not self.database_url:
            self.data_dir.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


# ---------------------------------------------------------------------------
# Collaborator availability
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Configured(Generic[T]):
    handle: T


@dataclass(frozen=True)
class Unconfigured:
    reason: str


@dataclass(frozen=True)
class PipelineConfig:
    """Everything the submission orchestrator needs, passed in explicitly."""

    store: Configured | Unconfigured
    exporter: Configured | Unconfigured
    submit_export_timeout: float = 30.0
    generate_export_timeout: float = 30.0
    persist_timeout: float = 10.0


def build_pipeline_config(settings: Settings) -> PipelineConfig:
    """Wire the store and exporter from settings. Nothing is launched here."""
    from torchlight.db import init_schema, make_engine
    from torchlight.exporter import DocumentExporter
    from torchlight.store import SubmissionStore

    log = logging.getLogger(__name__)

    store: Configured | Unconfigured
    if settings.store_enabled:
        settings.ensure_directories()
        engine = make_engine(settings.resolved_database_url)
        init_schema(engine)
        store = Configured(SubmissionStore(engine))
        log.info("Store configured (%s)", engine.url.render_as_string(hide_password=True))
    else:
        store = Unconfigured("TORCHLIGHT_STORE_ENABLED is off")
        log.warning("Store not configured - submissions will not be saved to the database")

    exporter: Configured | Unconfigured
    if settings.pdf_enabled:
        exporter = Configured(DocumentExporter(settings))
    else:
        exporter = Unconfigured("TORCHLIGHT_PDF_ENABLED is off")
        log.warning("PDF export disabled - submissions will be returned without a document")

    return PipelineConfig(
        store=store,
        exporter=exporter,
        submit_export_timeout=settings.submit_export_timeout,
        generate_export_timeout=settings.generate_export_timeout,
        persist_timeout=settings.persist_timeout,
    )
