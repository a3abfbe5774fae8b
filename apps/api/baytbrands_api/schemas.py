from __future__ import annotations

import datetime as dt
from typing import Annotated, Any, ClassVar, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import ErrorInfo


def _as_utc(value: dt.datetime) -> dt.datetime:
    # SQLite hands back naive datetimes; everything in this service is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC)


UtcDateTime = Annotated[dt.datetime, AfterValidator(_as_utc)]

AdPlatform = Literal["Meta", "TikTok", "Google", "Pinterest"]
AdStatus = Literal["Active", "Warning", "Paused", "Stopped"]
AgentType = Literal["CX", "CMO", "CartRecovery"]
TaskPriority = Literal["Low", "Medium", "High"]
TaskStatus = Literal["Todo", "InProgress", "Review", "Completed"]
TaskFilter = Literal["all", "mine", "team", "ai"]
FinancialPeriod = Literal["weekly", "monthly", "yearly"]

AGENT_METRIC_NAMES: dict[str, str] = {
    "CX": "resolutionRate",
    "CMO": "roasImprovement",
    "CartRecovery": "recoveryRate",
}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class BodyModel(CamelModel):
    """Request body. Infinity and NaN are rejected before anything reaches a store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)


class PatchModel(BodyModel):
    """Partial update body. Unset and null fields leave the stored value untouched."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", allow_inf_nan=False)

    def patch(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


# --- Brand ---------------------------------------------------------------


class Brand(CamelModel):
    id: int
    name: str
    code: str
    logo: str | None = None
    created_at: UtcDateTime


class BrandCreate(BodyModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    logo: str | None = None


# --- Financial -----------------------------------------------------------


class Financial(CamelModel):
    id: int
    brand_id: int
    date: UtcDateTime
    revenue: float
    ad_spend: float
    cogs: float
    other_expenses: float
    profit: float
    roas: float


class FinancialCreate(BodyModel):
    brand_id: int
    date: UtcDateTime | None = None
    revenue: float = 0.0
    ad_spend: float = Field(default=0.0, ge=0)
    cogs: float = Field(default=0.0, ge=0)
    other_expenses: float = Field(default=0.0, ge=0)
    profit: float = 0.0
    roas: float = Field(default=0.0, ge=0)


# --- Ad campaigns --------------------------------------------------------


class AdCampaign(CamelModel):
    id: int
    brand_id: int
    name: str
    platform: AdPlatform
    spend: float
    ctr: float
    roas: float
    status: AdStatus
    created_at: UtcDateTime
    updated_at: UtcDateTime


class AdCampaignCreate(BodyModel):
    brand_id: int
    name: str = Field(..., min_length=1, max_length=255)
    platform: AdPlatform
    spend: float = Field(default=0.0, ge=0)
    ctr: float = Field(default=0.0, ge=0)
    roas: float = Field(default=0.0, ge=0)
    status: AdStatus = "Active"


class AdCampaignUpdate(PatchModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    platform: AdPlatform | None = None
    spend: float | None = Field(default=None, ge=0)
    ctr: float | None = Field(default=None, ge=0)
    roas: float | None = Field(default=None, ge=0)
    status: AdStatus | None = None


# --- AI agents -----------------------------------------------------------


class AgentMetric(CamelModel):
    """The one headline indicator an agent reports; its name is fixed by the agent type."""

    type: AgentType
    name: str
    value: float

    @classmethod
    def for_agent(cls, agent_type: str, value: float | None) -> AgentMetric | None:
        if value is None:
            return None
        return cls(type=agent_type, name=AGENT_METRIC_NAMES[agent_type], value=value)


def _metric_value_from_map(agent_type: str | None, metrics: dict[str, float] | None) -> float | None:
    # Only the value under the type's own metric name is taken.
    if not metrics or not agent_type:
        return None
    return metrics.get(AGENT_METRIC_NAMES[agent_type])


class AiAgent(CamelModel):
    id: int
    brand_id: int
    name: str
    type: AgentType
    success_rate: float
    usage_count: int
    cost: float
    metric: AgentMetric | None = None
    created_at: UtcDateTime
    updated_at: UtcDateTime

    @computed_field
    @property
    def metrics(self) -> dict[str, float]:
        if self.metric is None:
            return {}
        return {self.metric.name: self.metric.value}


class AiAgentCreate(BodyModel):
    brand_id: int
    name: str = Field(..., min_length=1, max_length=255)
    type: AgentType
    success_rate: float = Field(default=0.0, ge=0, le=100)
    usage_count: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0)
    metric_value: float | None = None
    # Legacy free-form map, e.g. {"resolutionRate": 94}; folded into metric_value.
    metrics: dict[str, float] | None = None

    @model_validator(mode="after")
    def _resolve_metric(self) -> AiAgentCreate:
        if self.metric_value is None:
            self.metric_value = _metric_value_from_map(self.type, self.metrics)
        return self


class AiAgentUpdate(PatchModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    type: AgentType | None = None
    success_rate: float | None = Field(default=None, ge=0, le=100)
    usage_count: int | None = Field(default=None, ge=0)
    cost: float | None = Field(default=None, ge=0)
    metric_value: float | None = None
    metrics: dict[str, float] | None = None

    def patch(self) -> dict[str, Any]:
        data = super().patch()
        metrics = data.pop("metrics", None)
        if "metric_value" not in data:
            value = _metric_value_from_map(self.type, metrics)
            if value is not None:
                data["metric_value"] = value
        return data


# --- Product-market fit --------------------------------------------------


class Objection(CamelModel):
    name: str
    percentage: float = Field(..., ge=0, le=100, allow_inf_nan=False)


def _unwrap_objections(value: Any) -> Any:
    # Older payloads nest the list as {"items": [...]}.
    if isinstance(value, dict) and "items" in value:
        return value["items"]
    return value


class ProductMarketFit(CamelModel):
    id: int
    brand_id: int
    date: UtcDateTime
    pmf_score: float
    return_rate: float
    review_sentiment: float
    repeat_purchase_rate: float
    nps_score: float
    objections: list[Objection] = Field(default_factory=list)


class ProductMarketFitCreate(BodyModel):
    brand_id: int
    date: UtcDateTime | None = None
    pmf_score: float = Field(default=0.0, ge=0, le=100)
    return_rate: float = Field(default=0.0, ge=0, le=100)
    review_sentiment: float = Field(default=0.0, ge=0, le=100)
    repeat_purchase_rate: float = Field(default=0.0, ge=0, le=100)
    nps_score: float = Field(default=0.0, ge=-100, le=100)
    objections: list[Objection] = Field(default_factory=list)

    @field_validator("objections", mode="before")
    @classmethod
    def _unwrap(cls, value: Any) -> Any:
        return _unwrap_objections(value)


class ProductMarketFitUpdate(PatchModel):
    date: UtcDateTime | None = None
    pmf_score: float | None = Field(default=None, ge=0, le=100)
    return_rate: float | None = Field(default=None, ge=0, le=100)
    review_sentiment: float | None = Field(default=None, ge=0, le=100)
    repeat_purchase_rate: float | None = Field(default=None, ge=0, le=100)
    nps_score: float | None = Field(default=None, ge=-100, le=100)
    objections: list[Objection] | None = None

    @field_validator("objections", mode="before")
    @classmethod
    def _unwrap(cls, value: Any) -> Any:
        return _unwrap_objections(value)


# --- Tasks ---------------------------------------------------------------


class Task(CamelModel):
    id: int
    brand_id: int
    title: str
    description: str | None = None
    assigned_to: str | None = None
    priority: TaskPriority
    status: TaskStatus
    due_date: UtcDateTime | None = None
    category: str | None = None
    completed: bool
    created_at: UtcDateTime
    updated_at: UtcDateTime


class TaskCreate(BodyModel):
    brand_id: int
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    assigned_to: str | None = Field(default=None, max_length=32)
    priority: TaskPriority = "Medium"
    status: TaskStatus = "Todo"
    due_date: UtcDateTime | None = None
    category: str | None = Field(default=None, max_length=64)
    completed: bool = False


class TaskUpdate(PatchModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    assigned_to: str | None = Field(default=None, max_length=32)
    priority: TaskPriority | None = None
    status: TaskStatus | None = None
    due_date: UtcDateTime | None = None
    category: str | None = Field(default=None, max_length=64)
    completed: bool | None = None


# --- Meetings ------------------------------------------------------------


class Meeting(CamelModel):
    id: int
    brand_id: int
    title: str
    description: str | None = None
    start_time: UtcDateTime
    end_time: UtcDateTime
    attendees: list[str] = Field(default_factory=list)
    ai_report_ready: bool
    meeting_link: str | None = None
    created_at: UtcDateTime


class MeetingCreate(BodyModel):
    brand_id: int
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    start_time: UtcDateTime
    end_time: UtcDateTime
    attendees: list[str] = Field(default_factory=list)
    ai_report_ready: bool = False
    meeting_link: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _check_window(self) -> MeetingCreate:
        if self.end_time < self.start_time:
            raise ValueError("endTime must not be before startTime")
        return self


class MeetingUpdate(PatchModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    start_time: UtcDateTime | None = None
    end_time: UtcDateTime | None = None
    attendees: list[str] | None = None
    ai_report_ready: bool | None = None
    meeting_link: str | None = Field(default=None, max_length=500)


# --- Aggregation ---------------------------------------------------------


class BrandAggregate(CamelModel):
    """Everything the dashboard shows for one brand, plus the combined fetch status."""

    FETCH_ORDER: ClassVar[tuple[str, ...]] = (
        "financials",
        "ad_campaigns",
        "ai_agents",
        "product_market_fit",
        "tasks",
        "meetings",
    )

    brand_code: str
    brand_id: int | None = None
    brand: Brand | None = None
    financials: list[Financial] = Field(default_factory=list)
    ad_campaigns: list[AdCampaign] = Field(default_factory=list)
    ai_agents: list[AiAgent] = Field(default_factory=list)
    product_market_fit: ProductMarketFit | None = None
    tasks: list[Task] = Field(default_factory=list)
    meetings: list[Meeting] = Field(default_factory=list)
    is_loading: bool = False
    error: ErrorInfo | None = None


# --- View models ---------------------------------------------------------


class TrendIndicator(CamelModel):
    change: float
    is_positive: bool
    icon: Literal["arrow-up", "arrow-down"]
    tone: Literal["positive", "negative"]
    display: str


class KpiCard(CamelModel):
    key: Literal["revenue", "profit", "roas"]
    title: str
    value: str
    previous_value: str | None = None
    trend: TrendIndicator


class PlTotals(CamelModel):
    revenue: float
    expenses: float
    profit: float


class PlSeriesPoint(CamelModel):
    name: str
    revenue: float
    expenses: float
    profit: float


class PlCard(CamelModel):
    totals: PlTotals
    revenue_display: str
    expenses_display: str
    profit_display: str
    series: list[PlSeriesPoint]
    has_data: bool


class CampaignRow(CamelModel):
    id: int
    name: str
    platform: str
    spend: str
    ctr: str
    roas: str
    ctr_health: Literal["healthy", "needs_attention"]
    roas_health: Literal["healthy", "needs_attention"]
    status: str
    status_tone: str
    toggle_to: AdStatus


class AdPerformanceCard(CamelModel):
    rows: list[CampaignRow]
    caption: str


class AgentRow(CamelModel):
    id: int
    name: str
    type: str
    department: str
    metric_label: str
    metric_value: float
    metric_display: str
    success_rate: str
    usage_count: int
    cost: str


class AgentCard(CamelModel):
    agents: list[AgentRow]
    total_cost: str
    total_usage: int
    avg_cost_per_conversion: str


class ObjectionRow(CamelModel):
    name: str
    percentage: float
    display: str
    tone: Literal["red", "amber", "emerald"]


class PmfCard(CamelModel):
    has_data: bool
    empty_message: str | None = None
    pmf_score: float = 0.0
    return_rate: str = "0.0%"
    review_sentiment: str = "0.0%"
    repeat_purchase_rate: str = "0.0%"
    nps_score: float = 0.0
    objections: list[ObjectionRow] = Field(default_factory=list)


class TaskRow(CamelModel):
    id: int
    title: str
    description: str
    assigned_to: str
    assignee_is_ai: bool
    category: str
    priority_badge: str | None = None
    due_label: str
    completed: bool


class TaskPanel(CamelModel):
    active_filter: TaskFilter
    rows: list[TaskRow]
    caption: str


class MeetingRow(CamelModel):
    id: int
    title: str
    day_label: str
    time_range: str
    is_today: bool
    attendees: list[str]
    extra_attendees: str | None = None
    join_link: str | None = None
    ai_report_ready: bool


class MeetingPanel(CamelModel):
    rows: list[MeetingRow]


class DashboardView(CamelModel):
    brand_code: str
    brand_name: str
    is_loading: bool
    error: ErrorInfo | None = None
    kpis: list[KpiCard]
    pl: PlCard
    ad_performance: AdPerformanceCard
    agents: AgentCard
    pmf: PmfCard
    tasks: TaskPanel
    meetings: MeetingPanel


class PanelPayload(CamelModel):
    route_key: str
    title: str
    brand_code: str
    is_empty: bool
    empty_message: str | None = None
    data: Any = None


class Notification(CamelModel):
    level: Literal["success", "error"]
    title: str
    message: str
