"""Render a saved submission locally, without the API."""
from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path

from torchlight.config import configure_logging, get_settings
from torchlight.exporter import DocumentExporter, ExportError, find_browser_executable
from torchlight.renderer import render_html
from torchlight.services import MalformedRequest, parse_submission

# ---------------------------------------------------------------------------
# Terminal formatting
# ---------------------------------------------------------------------------

_USE_COLOR = sys.stdout.isatty() and not os.environ.get("NO_COLOR")


def _green(t: str) -> str: return f"\033[32m{t}\033[0m" if _USE_COLOR else t
def _red(t: str) -> str: return f"\033[31m{t}\033[0m" if _USE_COLOR else t
def _yellow(t: str) -> str: return f"\033[33m{t}\033[0m" if _USE_COLOR else t
def _bold(t: str) -> str: return f"\033[1m{t}\033[0m" if _USE_COLOR else t


OK = _green("OK")
FAIL = _red("FAIL")
WARN = _yellow("WARN")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def verify(exporter: DocumentExporter | None = None) -> bool:
    """Check that the rendering engine can be found and launched."""
    settings = get_settings()
    exporter = exporter or DocumentExporter(settings)
    print(_bold("Torchlight Export Verification"))
    print()

    configured = settings.browser_executable
    if configured:
        found = find_browser_executable(configured)
        if found:
            print(f"  {OK} Browser executable: {found}")
        else:
            print(f"  {FAIL} TORCHLIGHT_BROWSER_EXECUTABLE not found: {configured}")
            return False
    else:
        print(f"  {WARN} TORCHLIGHT_BROWSER_EXECUTABLE not set (using Playwright's bundled Chromium)")

    try:
        version = asyncio.run(exporter.verify())
    except ExportError as exc:
        print(f"  {FAIL} Browser launch ({exc.kind.value}): {exc}")
        print("       Run: playwright install chromium")
        return False
    print(f"  {OK} Browser launched: {version}")
    return True


def load_submission(path: Path):
    payload = json.loads(path.read_text(encoding="utf-8"))
    return parse_submission(payload)


def export_file(source: Path, target: Path | None, html_only: bool = False,
                exporter: DocumentExporter | None = None) -> Path:
    """Render *source* (a submission JSON file) to *target*; return the written path."""
    submission = load_submission(source)
    if html_only:
        target = target or source.with_suffix(".html")
        target.write_text(render_html(submission), encoding="utf-8")
        return target
    exporter = exporter or DocumentExporter(get_settings())
    target = target or source.with_suffix(".pdf")
    target.write_bytes(asyncio.run(exporter.export(submission)))
    return target


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

USAGE = """\
Usage: torchlight-export SUBMISSION.json [OUT.pdf] [--html]
       torchlight-export --verify

Options:
  --html      Write the HTML document instead of a PDF (no browser needed)
  --verify    Check that the rendering engine can be found and launched
  --help      Show this help message

Environment variables:
  TORCHLIGHT_BROWSER_EXECUTABLE   Chromium binary to use instead of Playwright's bundled one
  TORCHLIGHT_LAUNCH_TIMEOUT       Seconds to wait for the browser to start (default 10)
  TORCHLIGHT_RENDER_TIMEOUT       Seconds to wait for the PDF to render (default 30)
"""


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv

    if not args or "--help" in args or "-h" in args:
        print(USAGE)
        sys.exit(0)

    configure_logging(get_settings().log_level)

    if "--verify" in args:
        sys.exit(0 if verify() else 1)

    html_only = "--html" in args
    paths = [a for a in args if not a.startswith("--")]
    if not paths or len(paths) > 2:
        print(f"{FAIL} Expected SUBMISSION.json and an optional output path")
        sys.exit(1)

    source = Path(paths[0])
    target = Path(paths[1]) if len(paths) == 2 else None
    if not source.is_file():
        print(f"{FAIL} Submission file not found: {source}")
        sys.exit(1)

    try:
        written = export_file(source, target, html_only=html_only)
    except (json.JSONDecodeError, MalformedRequest) as exc:
        print(f"{FAIL} Not a submission: {exc}")
        sys.exit(1)
    except ExportError as exc:
        print(f"{FAIL} PDF generation failed ({exc.kind.value}): {exc}")
        sys.exit(1)
    print(f"{OK} Wrote {written}")


if __name__ == "__main__":
    main()
