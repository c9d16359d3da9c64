"""Tests for the printable HTML document."""
from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from lxml import html as lxml_html

from torchlight.renderer import (
    SECTION_TITLES,
    fmt_number,
    ordered_priorities,
    render_html,
    scorecard_total,
)
from torchlight.schemas import PriorityStack, ScorecardFactor, Submission

GENERATED_AT = datetime(2025, 3, 14, 9, 30, tzinfo=UTC)


def _render(payload: dict) -> tuple[str, lxml_html.HtmlElement]:
    markup = render_html(Submission.from_payload(payload), generated_at=GENERATED_AT)
    return markup, lxml_html.fromstring(markup)


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class TestLayout:
    def test_twelve_sections_in_order(self, sample_payload):
        _, doc = _render(sample_payload)
        sections = doc.xpath("//section")
        assert len(sections) == 12
        assert [s.get("data-section") for s in sections] == [str(n) for n in range(1, 13)]
        headings = [s.xpath("./h2")[0].text_content() for s in sections]
        assert headings == [f"{n}. {title}" for n, title in enumerate(SECTION_TITLES, start=1)]

    def test_page_breaks_from_section_three(self, sample_payload):
        _, doc = _render(sample_payload)
        for section in doc.xpath("//section"):
            number = int(section.get("data-section"))
            classes = section.get("class").split()
            assert ("new-page" in classes) == (number >= 3)

    def test_empty_submission_keeps_full_skeleton(self):
        markup, doc = _render({})
        assert len(doc.xpath("//section")) == 12
        assert len(doc.xpath('//div[@class="field-value empty"]')) > 20
        for absent in ("None", "undefined", ">null<"):
            assert absent not in markup

    def test_title_block(self, sample_payload):
        _, doc = _render(sample_payload)
        header = doc.xpath('//div[@class="header"]')[0]
        text = header.text_content()
        assert "Torchlight" in text
        assert "Operating System for ETA - Onboarding Form" in text
        assert "Submitted: 2025-03-14 09:30 UTC" in text
        assert "Searcher: Jane Doe" in text

    def test_no_searcher_line_without_name(self):
        _, doc = _render({})
        assert "Searcher:" not in doc.xpath('//div[@class="header"]')[0].text_content()

    def test_notice_precedes_deal_flow_section(self, sample_payload):
        _, doc = _render(sample_payload)
        notice = doc.xpath('//div[@class="notice"]')[0]
        assert notice.getnext().get("data-section") == "9"

    def test_rendering_is_deterministic(self, sample_payload):
        first, _ = _render(sample_payload)
        second, _ = _render(sample_payload)
        assert first == second
        assert first.startswith("<!DOCTYPE html>")


# ---------------------------------------------------------------------------
# Field values
# ---------------------------------------------------------------------------


class TestFieldValues:
    def test_markup_in_values_is_escaped(self):
        markup, doc = _render({
            "quickSummary": {"searcherName": "<script>alert(1)</script>", "primaryThesis": 'a & b "c"'},
        })
        assert "<script>" not in markup
        assert "&lt;script&gt;" in markup
        assert not doc.xpath("//script")
        assert "a & b" in doc.text_content()

    def test_control_characters_do_not_break_rendering(self):
        _, doc = _render({"quickSummary": {"primaryThesis": "bad\x00byte\x0bhere"}})
        assert "badbytehere" in doc.text_content()

    def test_blank_list_entries_render_empty_box(self):
        _, doc = _render({"quickSummary": {"nonNegotiables": ["", "   "]}})
        section = doc.xpath('//section[@data-section="2"]')[0]
        assert not section.xpath(".//li")
        assert section.xpath('.//div[@class="field-value empty"]')

    def test_list_entries_render_as_items(self, sample_payload):
        _, doc = _render(sample_payload)
        section = doc.xpath('//section[@data-section="2"]')[0]
        items = [li.text_content() for li in section.xpath(".//ul/li")]
        assert items == ["Ops background", "Industry network", "No turnarounds"]

    def test_revenue_range_and_deal_structures(self, sample_payload):
        _, doc = _render(sample_payload)
        text = doc.xpath('//section[@data-section="6"]')[0].text_content()
        assert "$2M - $10M" in text
        assert "SBA, Seller Note" in text

    def test_selected_verdict_is_marked(self, sample_payload):
        _, doc = _render(sample_payload)
        selected = doc.xpath('//section[@data-section="12"]//span[@class="option selected"]')
        assert len(selected) == 1
        assert "Proceed" in selected[0].text_content()


# ---------------------------------------------------------------------------
# Scorecard
# ---------------------------------------------------------------------------


class TestScorecard:
    def test_one_row_per_factor_with_placeholders(self, sample_payload):
        _, doc = _render(sample_payload)
        rows = doc.xpath("//table[@class='scorecard']/tbody/tr")
        assert len(rows) == 3
        assert [td.text_content() for td in rows[2]] == ["Untitled", "No definition", "0%"]
        assert rows[1][2].text_content() == "10.5%"

    def test_total_row(self, sample_payload):
        _, doc = _render(sample_payload)
        total = doc.xpath("//table[@class='scorecard']/tfoot/tr/td")[-1].text_content()
        assert total == "35.5%"

    def test_total_uses_exact_decimal_sum(self):
        factors = [ScorecardFactor(weight=0.1), ScorecardFactor(weight=0.2), ScorecardFactor()]
        assert scorecard_total(factors) == Decimal("0.3")

    def test_total_of_empty_scorecard(self):
        _, doc = _render({})
        total = doc.xpath("//table[@class='scorecard']/tfoot/tr/td")[-1].text_content()
        assert total == "0.0%"

    def test_huge_weight_totals_without_exponent(self):
        _, doc = _render({"scorecard": [{"weight": 1e30}, {"weight": 0.25}]})
        assert len(doc.xpath("//section")) == 12
        total = doc.xpath("//table[@class='scorecard']/tfoot/tr/td")[-1].text_content()
        assert total == "1" + "0" * 30 + ".3%"
        first_row = doc.xpath("//table[@class='scorecard']/tbody/tr")[0]
        assert first_row[2].text_content() == "1" + "0" * 30 + "%"

    def test_total_of_huge_weights_keeps_tenths(self):
        factors = [ScorecardFactor(weight=1e300), ScorecardFactor(weight=0.25)]
        assert f"{scorecard_total(factors):f}" == "1" + "0" * 300 + ".3"


# ---------------------------------------------------------------------------
# Priority stack
# ---------------------------------------------------------------------------


class TestPriorityStack:
    def test_ranked_first_then_canonical_order(self):
        stack = PriorityStack(growth_rate=3, profitability=1, recurring_revenue=2, geography=0)
        keys = [key for key, _ in ordered_priorities(stack)]
        assert keys == [
            "profitability", "recurring_revenue", "growth_rate",
            "low_people_intensity", "reg_simplicity", "owner_succession_timing",
            "geography", "mission_values",
        ]

    def test_ties_keep_canonical_order(self):
        stack = PriorityStack(mission_values=1, growth_rate=1)
        keys = [key for key, _ in ordered_priorities(stack)]
        assert keys[:2] == ["growth_rate", "mission_values"]

    def test_rendered_order(self, sample_payload):
        _, doc = _render(sample_payload)
        items = doc.xpath("//ol[@class='priority-stack']/li")
        assert len(items) == 8
        assert [li.get("data-priority") for li in items[:3]] == [
            "profitability", "growth_rate", "recurring_revenue",
        ]


@pytest.mark.parametrize("value,expected", [
    (None, ""), (10.0, "10"), (10.5, "10.5"), (0, "0"),
])
def test_fmt_number(value, expected):
    assert fmt_number(value) == expected


def test_total_with_unset_weight_in_the_middle():
    _, doc = _render({"scorecard": [{"weight": 10}, {"weight": None}, {"weight": 25.5}]})
    assert len(doc.xpath("//table[@class='scorecard']/tbody/tr")) == 3
    assert doc.xpath("//table[@class='scorecard']/tfoot/tr/td")[-1].text_content() == "35.5%"


def test_two_ranked_priorities_lead():
    payload = {"prioritiesNonNegotiables": {"priorityStack": {"growthRate": 2, "profitability": 1}}}
    orders = []
    for _ in range(2):
        _, doc = _render(payload)
        orders.append([li.get("data-priority") for li in doc.xpath("//ol[@class='priority-stack']/li")])
    assert orders[0] == orders[1] == [
        "profitability", "growth_rate", "recurring_revenue", "low_people_intensity",
        "reg_simplicity", "owner_succession_timing", "geography", "mission_values",
    ]
