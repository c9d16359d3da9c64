from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from torchlight.config import Settings, get_settings
from torchlight.db import init_schema

FAKE_PDF = b"%PDF-1.4\n% fake document\n%%EOF"


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setenv("TORCHLIGHT_DATA_DIR", str(tmp_path / "data"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


def memory_engine():
    """In-memory SQLite shared by every connection (and thread) of the engine."""
    return create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture()
def engine():
    eng = memory_engine()
    init_schema(eng)
    return eng


# ---------------------------------------------------------------------------
# Fake rendering engine
# ---------------------------------------------------------------------------


class FakePage:
    def __init__(self, pdf_delay: float = 0, pdf_error: Exception | None = None):
        self.pdf_delay = pdf_delay
        self.pdf_error = pdf_error
        self.content: str | None = None
        self.pdf_kwargs: dict[str, Any] = {}

    async def set_content(self, markup: str, wait_until: str = "load") -> None:
        self.content = markup

    async def pdf(self, **kwargs: Any) -> bytes:
        self.pdf_kwargs = kwargs
        if self.pdf_delay:
            await asyncio.sleep(self.pdf_delay)
        if self.pdf_error is not None:
            raise self.pdf_error
        return FAKE_PDF


class FakeBrowser:
    version = "Chromium 120.0.0.0"

    def __init__(self, page: FakePage | None = None):
        self.page = page or FakePage()
        self.closed = False

    async def new_page(self) -> FakePage:
        return self.page

    async def close(self) -> None:
        self.closed = True


class FakeBrowserType:
    def __init__(self, browser: FakeBrowser | None = None, launch_delay: float = 0,
                 launch_error: Exception | None = None):
        self.browser = browser or FakeBrowser()
        self.launch_delay = launch_delay
        self.launch_error = launch_error
        self.launch_kwargs: dict[str, Any] = {}

    async def launch(self, **kwargs: Any) -> FakeBrowser:
        self.launch_kwargs = kwargs
        if self.launch_delay:
            await asyncio.sleep(self.launch_delay)
        if self.launch_error is not None:
            raise self.launch_error
        return self.browser


def factory_for(browser_type: FakeBrowserType):
    @asynccontextmanager
    async def factory():
        yield browser_type
    return factory


@pytest.fixture()
def fast_settings() -> Settings:
    return Settings(launch_timeout=0.2, render_timeout=0.2, close_timeout=0.2)


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_payload() -> dict[str, Any]:
    return {
        "email": "  jane@searchfund.co  ",
        "quickSummary": {
            "searcherName": "Jane Doe",
            "homeBase": "Denver, CO",
            "targetCloseWindow": "Q3 2025",
            "primaryThesis": "B2B services with recurring revenue",
            "rightToWin": ["Ops background", "", "Industry network"],
            "nonNegotiables": ["No turnarounds"],
        },
        "backgroundEdge": {
            "experienceMap": {
                "functionalStrengths": "Operations",
                "industryFamiliarity": 4,
                "dealExposure": "Two add-ons at a PE firm",
                "operatingSuperpowers": ["Pricing"],
                "knownGaps": [],
            },
            "credibilityAnchors": {"logosRoles": "Bain", "regulatoryDomains": "", "audienceTrusted": "CFOs"},
        },
        "scorecard": [
            {"id": "right-to-win", "name": "Right-to-Win", "definition": "Clear advantage", "weight": 25},
            {"id": "market-health", "name": "Market Health", "definition": "Growing niche", "weight": 10.5},
            {"id": "custom-1", "name": "", "definition": "", "weight": None},
        ],
        "prioritiesNonNegotiables": {
            "priorityStack": {"growthRate": 2, "profitability": 1, "recurringRevenue": 3},
            "nonNegotiables": {"industryExclusions": ["Restaurants", "Crypto"]},
        },
        "searchConstraints": {
            "revenueMin": 2, "revenueMax": 10,
            "geographyMustHave": ["Colorado"],
            "dealStructures": {"sba": True, "sellerNote": True},
        },
        "subNicheIdentification": {
            "coreNicheCandidates": ["Commercial HVAC", "Fire safety"],
            "adjacencyMatrix": [{"subNiche": "Plumbing", "sameBuyer": True, "priority": "High"}],
        },
        "funnelKPI": {"searchKPIs": {"weeklyTargetsAdded": 50}},
        "decisionGate": {"fitVerdict": "proceed"},
        "clientVersion": "2.1",
    }
