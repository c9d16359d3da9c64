"""Submission pipeline shared by the API and the export CLI.

``submit`` validates, persists and exports; the two side effects are
independent, so a failed save never blocks the PDF and a failed PDF never
undoes the save.
"""
from __future__ import annotations

import asyncio
import base64
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from torchlight.config import Configured, PipelineConfig
from torchlight.exporter import (
    DocumentExporter,
    EngineUnavailable,
    ExportError,
    ExportErrorKind,
    ExportResult,
    RenderError,
    RenderTimeout,
)
from torchlight.schemas import Submission
from torchlight.store import SaveResult, StoreErrorKind, SubmissionStore

log = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Submission received successfully"
PDF_SKIPPED = " (PDF generation skipped)"
DB_SKIPPED = " (Database save skipped)"

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class MalformedRequest(ValueError):
    """The request body is not a JSON object."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def parse_submission(payload: Any) -> Submission:
    if not isinstance(payload, dict):
        raise MalformedRequest(f"Expected a JSON object, got {type(payload).__name__}")
    return Submission.from_payload(payload)


def normalize_email(submission: Submission) -> str | None:
    """Trim the email in place. Implausible addresses are logged, never rejected."""
    email = submission.email.strip()
    submission.email = email
    if not email:
        return None
    if not EMAIL_RE.match(email):
        log.warning("ValidationSoft: email %r does not look like an address; storing as given", email)
    return email


def encode_document(document: bytes) -> str:
    return base64.b64encode(document).decode("ascii")


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


@dataclass
class SubmitOutcome:
    save: SaveResult = field(default_factory=lambda: SaveResult(saved=False))
    export: ExportResult = field(default_factory=ExportResult)

    @property
    def message(self) -> str:
        message = SUCCESS_MESSAGE
        if not self.export.ok:
            message += PDF_SKIPPED
        if not self.save.saved:
            message += DB_SKIPPED
        return message

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": True,
            "message": self.message,
            "dbSaved": self.save.saved,
            "pdfGenerated": self.export.ok,
            "pdf": encode_document(self.export.document) if self.export.document is not None else None,
        }
        if self.save.saved:
            body["submissionId"] = self.save.record_id
        return body


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class SubmissionOrchestrator:
    def __init__(self, config: PipelineConfig):
        self.config = config

    @property
    def store(self) -> SubmissionStore | None:
        return self.config.store.handle if isinstance(self.config.store, Configured) else None

    @property
    def exporter(self) -> DocumentExporter | None:
        return self.config.exporter.handle if isinstance(self.config.exporter, Configured) else None

    async def _persist(self, submission: Submission) -> SaveResult:
        store = self.store
        if store is None:
            log.info("Database not configured - skipping save (%s)", self.config.store.reason)
            return SaveResult(saved=False)
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(store.save, submission), self.config.persist_timeout,
            )
        except TimeoutError:
            log.error("Database save timed out after %gs", self.config.persist_timeout)
            return SaveResult(saved=False, error_kind=StoreErrorKind.CONNECTIVITY)
        except Exception:
            log.exception("Database save failed (non-fatal)")
            return SaveResult(saved=False, error_kind=StoreErrorKind.UNKNOWN)

    async def _export(self, submission: Submission, timeout: float) -> bytes:
        exporter = self.exporter
        if exporter is None:
            raise EngineUnavailable(f"PDF export not configured ({self.config.exporter.reason})")
        try:
            return await asyncio.wait_for(exporter.export(submission), timeout)
        except TimeoutError as exc:
            raise RenderTimeout(f"PDF generation timeout after {timeout:g}s") from exc
        except ExportError:
            raise
        except Exception as exc:
            log.exception("Unexpected PDF generation error")
            raise RenderError(f"PDF generation failed: {exc}") from exc

    async def submit(self, payload: Any) -> SubmitOutcome:
        """Validate, persist, then export. Raises only ``MalformedRequest``."""
        submission = parse_submission(payload)
        email = normalize_email(submission)
        log.info("New submission received: %s", email or "(no email)")

        outcome = SubmitOutcome()
        outcome.save = await self._persist(submission)

        try:
            document = await self._export(submission, self.config.submit_export_timeout)
            outcome.export = ExportResult(document=document)
        except ExportError as exc:
            log.warning("PDF generation error (non-fatal, %s): %s", exc.kind.value, exc)
            outcome.export = ExportResult(error=exc.kind)
        return outcome

    async def generate_pdf(self, payload: Any) -> bytes:
        """Export only. Raises ``MalformedRequest`` or ``ExportError``."""
        submission = parse_submission(payload)
        return await self._export(submission, self.config.generate_export_timeout)
