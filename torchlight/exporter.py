"""Submission -> PDF through headless Chromium (Playwright).

Launch, render and close are each bounded by their own timeout. The browser
is always closed once it has been launched, whatever happens while
rendering.
"""
from __future__ import annotations

import asyncio
import logging
import shutil
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, AsyncContextManager, AsyncIterator, Callable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from torchlight.config import Settings
from torchlight.renderer import render_html
from torchlight.schemas import Submission

log = logging.getLogger(__name__)

PDF_FORMAT = "A4"
PDF_MARGINS = {"top": "20mm", "right": "15mm", "bottom": "20mm", "left": "15mm"}
LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage", "--disable-gpu"]


class ExportErrorKind(str, Enum):
    ENGINE_LAUNCH_TIMEOUT = "engine_launch_timeout"
    RENDER_TIMEOUT = "render_timeout"
    ENGINE_LAUNCH_ERROR = "engine_launch_error"
    RENDER_ERROR = "render_error"
    ENGINE_UNAVAILABLE = "engine_unavailable"


class ExportError(Exception):
    """Document export failed; subclasses fix the ``kind``."""

    kind: ExportErrorKind = ExportErrorKind.RENDER_ERROR


class EngineLaunchTimeout(ExportError):
    kind = ExportErrorKind.ENGINE_LAUNCH_TIMEOUT


class RenderTimeout(ExportError):
    kind = ExportErrorKind.RENDER_TIMEOUT


class EngineLaunchError(ExportError):
    kind = ExportErrorKind.ENGINE_LAUNCH_ERROR


class RenderError(ExportError):
    kind = ExportErrorKind.RENDER_ERROR


class EngineUnavailable(ExportError):
    kind = ExportErrorKind.ENGINE_UNAVAILABLE


@dataclass
class ExportResult:
    document: bytes | None = None
    error: ExportErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.document is not None


def find_browser_executable(configured: str = "") -> str | None:
    """Resolve a configured browser binary; ``None`` means Playwright's bundled Chromium."""
    if not configured:
        return None
    if Path(configured).expanduser().is_file():
        return str(Path(configured).expanduser())
    return shutil.which(configured)


@asynccontextmanager
async def playwright_chromium() -> AsyncIterator[Any]:
    """Yield Playwright's Chromium browser type; the driver stops on exit.

    Usage::

        async with playwright_chromium() as chromium:
            browser = await chromium.launch(headless=True)
    """
    async with async_playwright() as pw:
        yield pw.chromium


class DocumentExporter:
    def __init__(
        self,
        settings: Settings,
        browser_type_factory: Callable[[], AsyncContextManager[Any]] = playwright_chromium,
    ):
        self.settings = settings
        self.browser_type_factory = browser_type_factory

    # -- browser lifecycle --------------------------------------------------

    async def _launch(self, browser_type: Any) -> Any:
        options: dict[str, Any] = {"headless": True, "args": LAUNCH_ARGS}
        executable = find_browser_executable(self.settings.browser_executable)
        if executable:
            options["executable_path"] = executable
        try:
            return await asyncio.wait_for(browser_type.launch(**options), self.settings.launch_timeout)
        except TimeoutError as exc:
            raise EngineLaunchTimeout(
                f"Browser launch timed out after {self.settings.launch_timeout:g}s"
            ) from exc
        except (PlaywrightError, OSError) as exc:
            raise EngineLaunchError(f"Browser launch failed: {exc}") from exc

    async def _close(self, browser: Any) -> None:
        try:
            await asyncio.wait_for(browser.close(), self.settings.close_timeout)
        except (TimeoutError, PlaywrightError, OSError) as exc:
            log.warning("Error closing browser: %s", exc)

    @asynccontextmanager
    async def open_browser(self) -> AsyncIterator[Any]:
        """Launch a browser for the duration of the block and always close it.

        Usage::

            async with exporter.open_browser() as browser:
                page = await browser.new_page()
        """
        async with self.browser_type_factory() as browser_type:
            browser = await self._launch(browser_type)
            try:
                yield browser
            finally:
                await self._close(browser)

    # -- rendering ----------------------------------------------------------

    async def _print(self, browser: Any, markup: str) -> bytes:
        page = await browser.new_page()
        await page.set_content(markup, wait_until="load")
        return await page.pdf(format=PDF_FORMAT, print_background=True, margin=PDF_MARGINS)

    async def export_html(self, markup: str) -> bytes:
        async with self.open_browser() as browser:
            try:
                document = await asyncio.wait_for(self._print(browser, markup), self.settings.render_timeout)
            except TimeoutError as exc:
                raise RenderTimeout(
                    f"PDF rendering timed out after {self.settings.render_timeout:g}s"
                ) from exc
            except PlaywrightError as exc:
                raise RenderError(f"PDF rendering failed: {exc}") from exc
        log.info("PDF generated (%d bytes)", len(document))
        return document

    async def export(self, submission: Submission, generated_at: datetime | None = None) -> bytes:
        return await self.export_html(render_html(submission, generated_at))

    async def verify(self) -> str:
        """Launch and close the browser once; return the browser version."""
        async with self.open_browser() as browser:
            version = browser.version
            return version() if callable(version) else str(version)
