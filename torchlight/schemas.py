"""Pydantic models for the onboarding questionnaire and the Torchlight API.

Every field of every section is optional. Inbound values are coerced
leniently (blank numbers become ``None``, stray scalars become strings,
non-lists become empty lists) so that any JSON object validates into a
complete ``Submission`` with empty-but-present sections.
"""
from __future__ import annotations

import copy
import math
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PrivateAttr,
    model_validator,
)
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Lenient coercion
# ---------------------------------------------------------------------------


def _coerce_text(value: object) -> str:
    """Coerce a form value to a string; containers and null become ``""``."""
    if value is None or isinstance(value, (dict, list)):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _coerce_number(value: object) -> float | None:
    """Coerce a form value to a finite float, ``None`` if blank or unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _coerce_flag(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def _coerce_text_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [_coerce_text(v) for v in value]


def _coerce_list(value: object) -> list[Any]:
    return value if isinstance(value, list) else []


Text = Annotated[str, BeforeValidator(_coerce_text)]
Number = Annotated[float | None, BeforeValidator(_coerce_number)]
Flag = Annotated[bool, BeforeValidator(_coerce_flag)]
TextList = Annotated[list[str], BeforeValidator(_coerce_text_list)]


class _Section(BaseModel):
    """Base for every questionnaire section: camelCase on the wire, unknown keys kept."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    @model_validator(mode="before")
    @classmethod
    def _null_section_is_empty(cls, data: Any) -> Any:
        if isinstance(data, (dict, BaseModel)):
            return data
        return {}


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


class QuickSummary(_Section):
    searcher_name: Text = ""
    home_base: Text = ""
    target_close_window: Text = ""
    primary_thesis: Text = ""
    right_to_win: TextList = Field(default_factory=list)
    non_negotiables: TextList = Field(default_factory=list)
    go_no_go: Text = ""


class ExperienceMap(_Section):
    functional_strengths: Text = ""
    industry_familiarity: Number = None
    deal_exposure: Text = ""
    operating_superpowers: TextList = Field(default_factory=list)
    known_gaps: TextList = Field(default_factory=list)


class CredibilityAnchors(_Section):
    logos_roles: Text = ""
    regulatory_domains: Text = ""
    audience_trusted: Text = ""


class BackgroundEdge(_Section):
    experience_map: ExperienceMap = Field(default_factory=ExperienceMap)
    credibility_anchors: CredibilityAnchors = Field(default_factory=CredibilityAnchors)


class ScorecardFactor(_Section):
    id: Text = ""
    name: Text = ""
    definition: Text = ""
    weight: Number = None
    score: Number = None
    weighted: Number = None


# Canonical order of the eight priority dimensions, with display labels.
PRIORITY_DIMENSIONS: tuple[tuple[str, str], ...] = (
    ("growth_rate", "Growth Rate"),
    ("profitability", "Profitability"),
    ("recurring_revenue", "Recurring Revenue"),
    ("low_people_intensity", "Low People Intensity"),
    ("reg_simplicity", "Reg Simplicity"),
    ("owner_succession_timing", "Owner Succession Timing"),
    ("geography", "Geography"),
    ("mission_values", "Mission/Values"),
)


class PriorityStack(_Section):
    growth_rate: Number = None
    profitability: Number = None
    recurring_revenue: Number = None
    low_people_intensity: Number = None
    reg_simplicity: Number = None
    owner_succession_timing: Number = None
    geography: Number = None
    mission_values: Number = None


class NonNegotiables(_Section):
    industry_exclusions: TextList = Field(default_factory=list)
    business_model_exclusions: TextList = Field(default_factory=list)
    customer_mix_exclusions: TextList = Field(default_factory=list)
    contract_rev_exclusions: TextList = Field(default_factory=list)
    people_risk_exclusions: TextList = Field(default_factory=list)


class PrioritiesNonNegotiables(_Section):
    priority_stack: PriorityStack = Field(default_factory=PriorityStack)
    non_negotiables: NonNegotiables = Field(default_factory=NonNegotiables)


class DealStructures(_Section):
    sba: Flag = False
    cash: Flag = False
    seller_note: Flag = False
    earnout: Flag = False
    minority: Flag = False


class SearchConstraints(_Section):
    revenue_min: Number = None
    revenue_max: Number = None
    ebitda_min: Number = None
    ebitda_max: Number = None
    ebitda_margin_min: Number = None
    ebitda_margin_max: Number = None
    headcount_min: Number = None
    headcount_max: Number = None
    geography_must_have: TextList = Field(default_factory=list)
    geography_nice_to_have: TextList = Field(default_factory=list)
    owner_age: Text = ""
    owner_intent: Text = ""
    deal_structures: DealStructures = Field(default_factory=DealStructures)


class RightToWinMechanics(_Section):
    existing_channels: Text = ""
    referrers_advisors: Text = ""
    proof_points: Text = ""
    synergies: Text = ""
    ninety_day_advantages: Text = ""


class ICPBuyingMotion(_Section):
    primary_icp: Text = Field(default="", alias="primaryICP")
    budget_owners: Text = ""
    buying_triggers: Text = ""
    where_they_hang_out: Text = ""
    sales_cycle_length: Text = ""


class RiskMitigation(_Section):
    risk: Text = ""
    how_it_shows_up: Text = ""
    likelihood: Text = ""
    impact: Text = ""
    mitigation: Text = ""


class AdjacencyMatrixRow(_Section):
    sub_niche: Text = ""
    same_buyer: Flag = False
    same_deliverable: Flag = False
    same_channel: Flag = False
    margin_upside: Flag = False
    priority: Text = ""


class SubNicheIdentification(_Section):
    core_niche_candidates: TextList = Field(default_factory=list)
    adjacency_matrix: Annotated[list[AdjacencyMatrixRow], BeforeValidator(_coerce_list)] = Field(
        default_factory=list
    )
    keyword_cluster_a: Text = ""
    keyword_cluster_b: Text = ""
    similar_to_seed_list: TextList = Field(default_factory=list)


class QueryReadiness(_Section):
    clear_keyword_set: Flag = False
    exclusions_defined: Flag = False
    naics_sic_mapped: Flag = False
    geo_focus_workable: Flag = False


class VolumeQuality(_Section):
    est_tam: Text = Field(default="", alias="estTAM")
    qualifying_after_exclusions: Text = ""
    top_quartile_fit_count: Text = ""
    conclusion: Text = ""


class Remediation(_Section):
    widen_geo: Flag = False
    expand_adjacencies: Flag = False
    loosen_revenue_band: Flag = False
    add_channels_partners: Flag = False


class DealFlowSufficiency(_Section):
    query_readiness: QueryReadiness = Field(default_factory=QueryReadiness)
    volume_quality: VolumeQuality = Field(default_factory=VolumeQuality)
    remediation: Remediation = Field(default_factory=Remediation)


class OperatingPlanHooks(_Section):
    hundred_day_value_plan: TextList = Field(default_factory=list)
    retention_plan: Text = ""
    pricing_uplift_levers: Text = ""
    cross_sell_assets: Text = ""


class SearchKPIs(_Section):
    weekly_targets_added: Number = None
    new_convos_per_week: Number = None
    io_is_per_month: Number = None


class PostCloseKPIs(_Section):
    mrr_retainer_percent: Number = None
    gross_margin: Number = None
    utilization: Number = None
    nrr_expansion: Number = None
    pipeline_coverage_months: Number = None


class FunnelKPI(_Section):
    search_kpis: SearchKPIs = Field(default_factory=SearchKPIs, alias="searchKPIs")
    post_close_kpis: PostCloseKPIs = Field(default_factory=PostCloseKPIs, alias="postCloseKPIs")


class DecisionGate(_Section):
    fit_verdict: Text = ""
    rationale: Text = ""
    next_actions: Text = ""


# ---------------------------------------------------------------------------
# Submission root
# ---------------------------------------------------------------------------


class Submission(_Section):
    email: Text = ""
    quick_summary: QuickSummary = Field(default_factory=QuickSummary)
    background_edge: BackgroundEdge = Field(default_factory=BackgroundEdge)
    scorecard: Annotated[list[ScorecardFactor], BeforeValidator(_coerce_list)] = Field(default_factory=list)
    priorities_non_negotiables: PrioritiesNonNegotiables = Field(default_factory=PrioritiesNonNegotiables)
    search_constraints: SearchConstraints = Field(default_factory=SearchConstraints)
    right_to_win_mechanics: RightToWinMechanics = Field(default_factory=RightToWinMechanics)
    icp_buying_motion: ICPBuyingMotion = Field(default_factory=ICPBuyingMotion)
    risk_mitigations: Annotated[list[RiskMitigation], BeforeValidator(_coerce_list)] = Field(
        default_factory=list
    )
    sub_niche_identification: SubNicheIdentification = Field(default_factory=SubNicheIdentification)
    deal_flow_sufficiency: DealFlowSufficiency = Field(default_factory=DealFlowSufficiency)
    operating_plan_hooks: OperatingPlanHooks = Field(default_factory=OperatingPlanHooks)
    funnel_kpi: FunnelKPI = Field(default_factory=FunnelKPI, alias="funnelKPI")
    decision_gate: DecisionGate = Field(default_factory=DecisionGate)

    _raw: dict[str, Any] | None = PrivateAttr(default=None)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Submission:
        """Validate a decoded JSON object, remembering it verbatim for storage."""
        submission = cls.model_validate(payload)
        submission._raw = copy.deepcopy(payload)
        return submission

    def form_blob(self) -> dict[str, Any]:
        """The submission exactly as the client sent it (the stored source of truth)."""
        if self._raw is not None:
            return copy.deepcopy(self._raw)
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)

    def scorecard_blob(self) -> list[Any]:
        raw = self.form_blob().get("scorecard")
        if isinstance(raw, list):
            return raw
        return [f.model_dump(mode="json", by_alias=True, exclude_unset=True) for f in self.scorecard]


# ---------------------------------------------------------------------------
# Scorecard seed list
# ---------------------------------------------------------------------------


PRE_BUILT_SCORECARD_FACTORS: tuple[tuple[str, str, str], ...] = (
    ("right-to-win", "Right-to-Win",
     "Clear advantage vs. other buyers (relationships, domain, ops playbook)"),
    ("market-health", "Market Health",
     "Growing niche, fragmentation, budget durability"),
    ("quality-of-revenue", "Quality of Revenue",
     "Recurring, multi-year contracts, low churn, prepay"),
    ("service-productization", "Service Productization",
     "Repeatable scope, templates, SOPs, automation potential"),
    ("customer-concentration", "Customer Concentration",
     "Top client < 20% revenue; diversified ICP"),
    ("margin-unit-economics", "Margin & Unit Economics",
     "20–30% EBITDA typical; pricing power"),
    ("sales-engine-fit", "Sales Engine Fit",
     "Can your sales motion 2–3× qualified pipeline in 12 months?"),
    ("integration-risk", "Integration Risk",
     "Team retention, IP portability, tooling, data access"),
    ("reg-compliance-simplicity", "Reg/Compliance Simplicity",
     "Licensing, data handling, contracts risk"),
    ("exit-path-clarity", "Exit Path Clarity",
     "PE roll-up, strategic adjacency, 4–6×+ EBITDA potential"),
)


def default_scorecard() -> list[ScorecardFactor]:
    return [ScorecardFactor(id=fid, name=name, definition=definition)
            for fid, name, definition in PRE_BUILT_SCORECARD_FACTORS]


# ---------------------------------------------------------------------------
# API responses
# ---------------------------------------------------------------------------


class SubmitResponse(BaseModel):
    success: bool
    message: str
    dbSaved: bool
    pdfGenerated: bool
    pdf: str | None = None
    submissionId: str | None = None


class GeneratePdfResponse(BaseModel):
    success: bool
    pdf: str


class ExportFailureResponse(BaseModel):
    success: bool = False
    error: str
    message: str


class HealthOut(BaseModel):
    status: str
    message: str


class ScorecardFactorSeed(BaseModel):
    id: str
    name: str
    definition: str
    weight: float | None = None


class SubmissionRecordOut(BaseModel):
    id: str
    email: str | None = None
    submitted_at: str | None = None
    background: str | None = None
    interests: str | None = None
    experience: str | None = None
    scorecard: list[Any] = []
    form_data: dict[str, Any] | None = None
    searcher_name: str | None = None
    home_base: str | None = None
    target_close_window: str | None = None
