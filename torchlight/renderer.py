"""Submission -> printable HTML document.

The document is built as an lxml element tree, so every field value is a
text node and can never be interpreted as markup. Layout: a title block,
then exactly twelve ``<section>`` blocks in fixed order, then a footer.
Sections from "Background & Edge" onward start on a new page.

Empty-field policy: every field always renders its label and value box; an
empty scalar, or a list without a single non-blank entry, renders as an
empty placeholder box (``<div class="field-value empty">``). Nothing is
omitted, so two submissions always produce the same document skeleton.
"""
from __future__ import annotations

import re
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Iterable

from lxml import html as lxml_html
from lxml.html.builder import E

from torchlight.schemas import (
    PRIORITY_DIMENSIONS,
    PriorityStack,
    ScorecardFactor,
    Submission,
)

PRODUCT_NAME = "Torchlight"
SUBTITLE = "Operating System for ETA - Onboarding Form"

SECTION_TITLES: tuple[str, ...] = (
    "Contact Information",
    "Quick Summary",
    "Background & Edge",
    "Personal Deal Scorecard",
    "Priorities & Non-Negotiables",
    "Search Constraints",
    "Right-to-Win Mechanics",
    "Sub-Niche Identification",
    "Deal Flow Sufficiency Test",
    "Operating Plan Hooks",
    "Funnel & KPI",
    "Decision Gate",
)
FIRST_NEW_PAGE_SECTION = 3

CHECK = "✓"

STYLE = """
* { margin: 0; padding: 0; box-sizing: border-box; }
body { font-family: -apple-system, 'Segoe UI', Roboto, Ubuntu, sans-serif; line-height: 1.5; color: #333; }
.header { text-align: center; border-bottom: 3px solid #2563eb; padding-bottom: 16px; margin-bottom: 24px; }
.header h1 { color: #2563eb; font-size: 32px; margin-bottom: 4px; }
.header p { color: #6b7280; font-size: 15px; }
.header .meta { font-size: 12px; margin-top: 8px; }
.section { margin-bottom: 24px; }
.section.new-page { break-before: page; page-break-before: always; }
.section h2 { font-size: 20px; color: #1f2937; border-bottom: 2px solid #e5e7eb; padding-bottom: 6px; margin-bottom: 14px; }
.section h3 { font-size: 16px; color: #374151; margin: 12px 0 8px; }
.intro { color: #6b7280; margin-bottom: 12px; }
.field { margin-bottom: 12px; break-inside: avoid; page-break-inside: avoid; }
.field-label { font-weight: 600; color: #4b5563; font-size: 13px; margin-bottom: 4px; }
.field-value { color: #1f2937; font-size: 13px; padding: 8px 12px; background: #f9fafb;
  border-left: 3px solid #2563eb; min-height: 34px; white-space: pre-wrap; }
.field-value.empty { border-left-color: #d1d5db; }
.field-value ul, .field-value ol { padding-left: 20px; }
.options { display: flex; gap: 16px; font-size: 13px; }
.mark { display: inline-block; width: 16px; height: 16px; border: 2px solid #9ca3af; text-align: center;
  line-height: 12px; margin-right: 6px; }
.option.selected .mark { border-color: #2563eb; }
table { width: 100%; border-collapse: collapse; margin-top: 8px; }
th { background: #f3f4f6; padding: 8px; text-align: left; border: 1px solid #d1d5db; font-size: 12px; }
td { padding: 8px; border: 1px solid #d1d5db; font-size: 12px; }
tfoot td { background: #f3f4f6; font-weight: 600; }
.num { text-align: center; }
.notice { background: #fefce8; border-left: 4px solid #facc15; padding: 12px; margin-bottom: 24px; }
.notice h3 { color: #854d0e; font-size: 15px; margin-bottom: 4px; }
.notice p { color: #a16207; font-size: 13px; }
.footer { margin-top: 32px; padding-top: 16px; border-top: 1px solid #e5e7eb; text-align: center; color: #6b7280; font-size: 12px; }
"""

_XML_UNSAFE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


# ---------------------------------------------------------------------------
# Value formatting
# ---------------------------------------------------------------------------


def _clean(text: str) -> str:
    """Drop characters an XML/HTML tree cannot hold (control chars, lone surrogates)."""
    return _XML_UNSAFE.sub("", text)


def fmt_number(value: float | None) -> str:
    if value is None:
        return ""
    if value == int(value):
        return str(int(Decimal(str(value))))
    return str(value)


def fmt_timestamp(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(UTC)
    return moment.strftime("%Y-%m-%d %H:%M UTC")


def _filled(items: Iterable[str]) -> list[str]:
    return [i for i in items if i and i.strip()]


def scorecard_total(factors: Iterable[ScorecardFactor]) -> Decimal:
    """Sum of factor weights, unset weights counting as zero, to one decimal place."""
    weights = [Decimal(str(f.weight)) for f in factors if f.weight is not None]
    with localcontext() as ctx:
        # Exact to the tenths digit however large the weights are.
        ctx.prec = max(ctx.prec, max((w.adjusted() for w in weights), default=0) + len(weights) + 4)
        total = sum(weights, Decimal(0))
        return total.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def ordered_priorities(stack: PriorityStack) -> list[tuple[str, str]]:
    """Priority dimensions by rank ascending; unranked last, ties in canonical order."""
    def key(item: tuple[int, tuple[str, str]]):
        index, (field, _) = item
        rank = getattr(stack, field)
        unranked = rank is None or rank <= 0
        return (unranked, 0 if unranked else rank, index)

    return [dim for _, dim in sorted(enumerate(PRIORITY_DIMENSIONS), key=key)]


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


def _value_box(*children) -> lxml_html.HtmlElement:
    has_content = any(
        (isinstance(c, str) and c.strip()) or not isinstance(c, str) for c in children
    )
    if not has_content:
        return E.div({"class": "field-value empty"})
    return E.div({"class": "field-value"}, *[_clean(c) if isinstance(c, str) else c for c in children])


def _field(label: str, value: str) -> lxml_html.HtmlElement:
    return E.div({"class": "field"}, E.div({"class": "field-label"}, label), _value_box(value or ""))


def _list_field(label: str, items: Iterable[str], ordered: bool = False) -> lxml_html.HtmlElement:
    entries = [E.li(_clean(i)) for i in _filled(items)]
    if not entries:
        return _field(label, "")
    wrapper = E.ol(*entries) if ordered else E.ul(*entries)
    return E.div({"class": "field"}, E.div({"class": "field-label"}, label), _value_box(wrapper))


def _joined_field(label: str, items: Iterable[str]) -> lxml_html.HtmlElement:
    return _field(label, ", ".join(_filled(items)))


def _options(label: str, selected: str, options: tuple[tuple[str, str], ...]) -> lxml_html.HtmlElement:
    spans = []
    for value, text in options:
        chosen = selected == value
        spans.append(E.span(
            {"class": "option selected" if chosen else "option"},
            E.span({"class": "mark"}, CHECK if chosen else ""),
            text,
        ))
    return E.div({"class": "field"}, E.div({"class": "field-label"}, label), E.div({"class": "options"}, *spans))


def _checklist(items: tuple[tuple[bool, str], ...]) -> lxml_html.HtmlElement:
    rows = [
        E.div({"class": "option selected" if checked else "option"},
              E.span({"class": "mark"}, CHECK if checked else ""), text)
        for checked, text in items
    ]
    return E.div({"class": "field"}, *rows)


def _section(number: int, children: list) -> lxml_html.HtmlElement:
    classes = "section new-page" if number >= FIRST_NEW_PAGE_SECTION else "section"
    return E.section(
        {"class": classes, "data-section": str(number)},
        E.h2(f"{number}. {SECTION_TITLES[number - 1]}"),
        *children,
    )


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def _contact(s: Submission) -> list:
    return [_field("Email Address", s.email)]


def _quick_summary(s: Submission) -> list:
    qs = s.quick_summary
    return [
        _field("Searcher Name", qs.searcher_name),
        _field("Home Base", qs.home_base),
        _field("Target Close Window", qs.target_close_window),
        _field("Primary Thesis (1-2 lines)", qs.primary_thesis),
        _list_field("Right-to-Win (3 bullets)", qs.right_to_win),
        _list_field("Non-Negotiables", qs.non_negotiables),
    ]


def _background_edge(s: Submission) -> list:
    em = s.background_edge.experience_map
    ca = s.background_edge.credibility_anchors
    return [
        E.h3("Experience Map"),
        _field("Functional Strengths", em.functional_strengths),
        _field("Deal Exposure (if any)", em.deal_exposure),
        _list_field("Operating Superpowers", em.operating_superpowers),
        _list_field("Known Gaps", em.known_gaps),
        E.h3("Credibility Anchors"),
        _field("Logos / Roles That Open Doors", ca.logos_roles),
        _field("Regulatory or Technical Domains", ca.regulatory_domains),
        _field("Audience Where You're Already Trusted", ca.audience_trusted),
    ]


def _scorecard(s: Submission) -> list:
    rows = [
        E.tr(
            E.td(_clean(f.name) or "Untitled"),
            E.td(_clean(f.definition) or "No definition"),
            E.td({"class": "num"}, f"{fmt_number(f.weight or 0)}%"),
        )
        for f in s.scorecard
    ]
    table = E.table(
        {"class": "scorecard"},
        E.thead(E.tr(E.th("Factor"), E.th("Definition"), E.th({"class": "num"}, "Weight (%)"))),
        E.tbody(*rows),
        E.tfoot(E.tr(
            E.td({"colspan": "2", "style": "text-align: right"}, "TOTAL:"),
            E.td({"class": "num"}, f"{scorecard_total(s.scorecard):f}%"),
        )),
    )
    return [table]


_NON_NEGOTIABLE_FIELDS = (
    ("industry_exclusions", "Industry/Vertical Exclusions"),
    ("business_model_exclusions", "Business Model Exclusions"),
    ("customer_mix_exclusions", "Customer Mix Exclusions"),
    ("contract_rev_exclusions", "Contract/Revenue Exclusions"),
    ("people_risk_exclusions", "People Risk Exclusions"),
)


def _priorities(s: Submission) -> list:
    pn = s.priorities_non_negotiables
    ranked = [E.li({"data-priority": key}, label) for key, label in ordered_priorities(pn.priority_stack)]
    return [
        E.h3("Priority Stack"),
        E.div({"class": "field"}, _value_box(E.ol({"class": "priority-stack"}, *ranked))),
        E.h3("Non-Negotiables (Hard Stops)"),
        *[_joined_field(label, getattr(pn.non_negotiables, key)) for key, label in _NON_NEGOTIABLE_FIELDS],
    ]


_DEAL_STRUCTURE_LABELS = (
    ("sba", "SBA"),
    ("cash", "Cash"),
    ("seller_note", "Seller Note"),
    ("earnout", "Earnout"),
    ("minority", "Minority"),
)


def _money_range(low: float | None, high: float | None, unit: str = "M", prefix: str = "$") -> str:
    return f"{prefix}{fmt_number(low or 0)}{unit} - {prefix}{fmt_number(high) if high else '∞'}{unit}"


def _search_constraints(s: Submission) -> list:
    sc = s.search_constraints
    revenue = _money_range(sc.revenue_min, sc.revenue_max) if (sc.revenue_min or sc.revenue_max) else ""
    ebitda = ""
    if sc.ebitda_min or sc.ebitda_max or sc.ebitda_margin_min or sc.ebitda_margin_max:
        ebitda = _money_range(sc.ebitda_min, sc.ebitda_max)
        if sc.ebitda_margin_min or sc.ebitda_margin_max:
            ebitda += f" ({_money_range(sc.ebitda_margin_min, sc.ebitda_margin_max, unit='%', prefix='')} margin)"
    headcount = ""
    if sc.headcount_min or sc.headcount_max:
        headcount = f"{fmt_number(sc.headcount_min or 0)} - {fmt_number(sc.headcount_max) if sc.headcount_max else '∞'}"
    structures = [label for key, label in _DEAL_STRUCTURE_LABELS if getattr(sc.deal_structures, key)]
    return [
        _field("Revenue Range", revenue),
        _field("EBITDA Range", ebitda),
        _field("Headcount", headcount),
        _joined_field("Geography: Must-Have", sc.geography_must_have),
        _joined_field("Geography: Nice-to-Have", sc.geography_nice_to_have),
        _field("Owner Age / Profile", sc.owner_age),
        _field("Owner Intent", sc.owner_intent),
        _joined_field("Deal Structures OK", structures),
    ]


def _right_to_win(s: Submission) -> list:
    rtw = s.right_to_win_mechanics
    return [
        _field("Existing Channels & Communities", rtw.existing_channels),
        _field("Referrers / Advisors You Already Have", rtw.referrers_advisors),
        _field("Proof Points (Case Studies, Ops Wins)", rtw.proof_points),
        _field("Synergies with Current Platform/Team", rtw.synergies),
        _field("90-Day Post-Close Advantages (Be Concrete)", rtw.ninety_day_advantages),
    ]


def _sub_niche(s: Submission) -> list:
    sn = s.sub_niche_identification
    if sn.adjacency_matrix:
        rows = [
            E.tr(
                E.td(_clean(r.sub_niche)),
                *[E.td({"class": "num"}, CHECK if flag else "✗")
                  for flag in (r.same_buyer, r.same_deliverable, r.same_channel, r.margin_upside)],
                E.td({"class": "num"}, _clean(r.priority)),
            )
            for r in sn.adjacency_matrix
        ]
        matrix = E.div(
            {"class": "field"},
            E.div({"class": "field-label"}, "Adjacency Matrix"),
            E.table(
                {"class": "adjacency"},
                E.thead(E.tr(*[E.th(h) for h in (
                    "Sub-Niche", "Same Buyer", "Same Deliverable", "Same Channel", "Margin Upside", "Priority",
                )])),
                E.tbody(*rows),
            ),
        )
    else:
        matrix = _field("Adjacency Matrix", "")
    return [
        _list_field("Core Niche Candidates (top 3)", sn.core_niche_candidates, ordered=True),
        matrix,
        _field("Keyword Cluster A", sn.keyword_cluster_a),
        _field("Keyword Cluster B", sn.keyword_cluster_b),
        _joined_field('"Similar to" Seed List (5-10 anchors)', sn.similar_to_seed_list),
    ]


def _deal_flow(s: Submission) -> list:
    dfs = s.deal_flow_sufficiency
    qr, vq, rem = dfs.query_readiness, dfs.volume_quality, dfs.remediation
    return [
        E.p({"class": "intro"},
            "Goal: ensure ≥ 150 qualifying targets within 1–5M revenue that match scorecard ≥ 360/500."),
        E.h3("Query Readiness"),
        _checklist((
            (qr.clear_keyword_set, "Clear keyword set?"),
            (qr.exclusions_defined, "Exclusions defined?"),
            (qr.naics_sic_mapped, "NAICS/SIC mapped?"),
            (qr.geo_focus_workable, "Geo focus workable?"),
        )),
        E.h3("Volume & Quality"),
        _field("Est. TAM (companies in band)", vq.est_tam),
        _field("Qualifying after exclusions", vq.qualifying_after_exclusions),
        _field('Top-quartile "fit" count', vq.top_quartile_fit_count),
        _options("Conclusion", vq.conclusion, (
            ("sufficient", "Sufficient"), ("borderline", "Borderline"), ("insufficient", "Insufficient"),
        )),
        E.h3("Remediation"),
        _checklist((
            (rem.widen_geo, "Widen geo"),
            (rem.expand_adjacencies, "Expand adjacencies"),
            (rem.loosen_revenue_band, "Loosen revenue band"),
            (rem.add_channels_partners, "Add channels/partners"),
        )),
    ]


def _operating_plan(s: Submission) -> list:
    oph = s.operating_plan_hooks
    plan = list(oph.hundred_day_value_plan) + ["", "", ""]
    return [
        E.p({"class": "intro"}, "Pre-LOI thinking about value creation."),
        E.h3("100-Day Value Plan (three moves)"),
        *[_field(f"Move {i + 1}", plan[i]) for i in range(3)],
        _field("Retention Plan for Key Staff", oph.retention_plan),
        _field("Pricing/Uplift Levers", oph.pricing_uplift_levers),
        _field("Cross-Sell with Existing Assets", oph.cross_sell_assets),
    ]


def _funnel_kpi(s: Submission) -> list:
    search, post = s.funnel_kpi.search_kpis, s.funnel_kpi.post_close_kpis
    return [
        E.p({"class": "intro"}, "KPIs for both search and post-close operations."),
        E.h3("Search KPIs"),
        _field("Weekly Targets Added", fmt_number(search.weekly_targets_added)),
        _field("New Convos/Week", fmt_number(search.new_convos_per_week)),
        _field("IOIs/Month", fmt_number(search.io_is_per_month)),
        E.h3("Post-Close KPIs"),
        _field("MRR/Retainer %", fmt_number(post.mrr_retainer_percent)),
        _field("Gross Margin (%)", fmt_number(post.gross_margin)),
        _field("Utilization (%)", fmt_number(post.utilization)),
        _field("NRR/Expansion (%)", fmt_number(post.nrr_expansion)),
        _field("Pipeline Coverage (× months)", fmt_number(post.pipeline_coverage_months)),
    ]


def _decision_gate(s: Submission) -> list:
    dg = s.decision_gate
    return [
        E.p({"class": "intro"}, "Final decision point and next actions."),
        _options("Fit Verdict", dg.fit_verdict, (
            ("proceed", "Proceed"), ("fix-reevaluate", "Fix & Re-evaluate"), ("pass", "Pass"),
        )),
        _field("Rationale", dg.rationale),
        _field("Next Actions", dg.next_actions),
    ]


_SECTION_BUILDERS = (
    _contact, _quick_summary, _background_edge, _scorecard, _priorities, _search_constraints,
    _right_to_win, _sub_niche, _deal_flow, _operating_plan, _funnel_kpi, _decision_gate,
)

_NOTICE_BEFORE_SECTION = 9


def _notice() -> lxml_html.HtmlElement:
    return E.div(
        {"class": "notice"},
        E.h3("Torchlight Team Responsibility"),
        E.p("The following four sections (Deal Flow Sufficiency Test, Operating Plan Hooks, "
            "Funnel & KPI, and Decision Gate) are primarily the responsibility of the Torchlight "
            "team. However, you may fill in information if you have relevant insights or preferences."),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_document(submission: Submission, generated_at: datetime | None = None) -> lxml_html.HtmlElement:
    """Build the document tree. ``generated_at`` is the only non-deterministic input."""
    stamp = fmt_timestamp(generated_at or datetime.now(UTC))

    header = E.div({"class": "header"}, E.h1(PRODUCT_NAME), E.p(SUBTITLE), E.p({"class": "meta"}, f"Submitted: {stamp}"))
    searcher = _clean(submission.quick_summary.searcher_name).strip()
    if searcher:
        header.append(E.p({"class": "meta searcher"}, E.strong("Searcher:"), f" {searcher}"))

    body = E.body(header)
    for number, build in enumerate(_SECTION_BUILDERS, start=1):
        if number == _NOTICE_BEFORE_SECTION:
            body.append(_notice())
        body.append(_section(number, build(submission)))
    body.append(E.div(
        {"class": "footer"},
        E.p(f"{PRODUCT_NAME} - Operating System for ETA"),
        E.p(f"This document was generated on {stamp}"),
    ))

    return E.html(
        E.head(E.meta(charset="UTF-8"), E.title(f"{PRODUCT_NAME} Onboarding Form"), E.style(STYLE)),
        body,
    )


def render_html(submission: Submission, generated_at: datetime | None = None) -> str:
    return lxml_html.tostring(
        build_document(submission, generated_at),
        doctype="<!DOCTYPE html>",
        encoding="unicode",
        method="html",
    )
