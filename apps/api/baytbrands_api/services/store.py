from __future__ import annotations

import datetime as dt
import itertools
import threading
from typing import Any, Callable, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from .. import schemas
from ..errors import FieldError, ValidationFailed, validation_failed
from ..logs import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

PERIOD_DAYS = {"weekly": 7, "monthly": 31, "yearly": 366}


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def period_cutoff(period: str | None, now: dt.datetime) -> dt.datetime | None:
    if period is None:
        return None
    if period not in PERIOD_DAYS:
        raise ValidationFailed(
            "Invalid financial period",
            [FieldError(field="period", message=f"expected one of {', '.join(PERIOD_DAYS)}")],
        )
    return now - dt.timedelta(days=PERIOD_DAYS[period])


def unknown_brand(brand_id: int) -> ValidationFailed:
    return ValidationFailed(
        "Unknown brand",
        [FieldError(field="brandId", message=f"brand {brand_id} does not exist")],
    )


def duplicate_brand_code(code: str) -> ValidationFailed:
    return ValidationFailed(
        "Brand code already in use",
        [FieldError(field="code", message=f"brand code {code!r} already exists")],
    )


def check_meeting_window(start: dt.datetime, end: dt.datetime) -> None:
    if end < start:
        raise ValidationFailed(
            "Invalid meeting data",
            [FieldError(field="endTime", message="endTime must not be before startTime")],
        )


class DashboardStore(Protocol):
    """Brand-scoped CRUD over every dashboard entity.

    Updates return None for an unknown id instead of raising. Creates raise
    ValidationFailed when the referenced brand does not exist.
    """

    name: str

    def reset(self) -> None: ...

    def list_brands(self) -> list[schemas.Brand]: ...

    def get_brand(self, brand_id: int) -> schemas.Brand | None: ...

    def get_brand_by_code(self, code: str) -> schemas.Brand | None: ...

    def create_brand(self, data: schemas.BrandCreate) -> schemas.Brand: ...

    def list_financials(self, brand_id: int, period: str | None = None) -> list[schemas.Financial]: ...

    def create_financial(self, data: schemas.FinancialCreate) -> schemas.Financial: ...

    def list_ad_campaigns(self, brand_id: int) -> list[schemas.AdCampaign]: ...

    def get_ad_campaign(self, campaign_id: int) -> schemas.AdCampaign | None: ...

    def create_ad_campaign(self, data: schemas.AdCampaignCreate) -> schemas.AdCampaign: ...

    def update_ad_campaign(self, campaign_id: int, patch: dict[str, Any]) -> schemas.AdCampaign | None: ...

    def list_ai_agents(self, brand_id: int) -> list[schemas.AiAgent]: ...

    def get_ai_agent(self, agent_id: int) -> schemas.AiAgent | None: ...

    def create_ai_agent(self, data: schemas.AiAgentCreate) -> schemas.AiAgent: ...

    def update_ai_agent(self, agent_id: int, patch: dict[str, Any]) -> schemas.AiAgent | None: ...

    def get_product_market_fit(self, brand_id: int) -> schemas.ProductMarketFit | None: ...

    def create_product_market_fit(self, data: schemas.ProductMarketFitCreate) -> schemas.ProductMarketFit: ...

    def update_product_market_fit(self, pmf_id: int, patch: dict[str, Any]) -> schemas.ProductMarketFit | None: ...

    def list_tasks(self, brand_id: int, status: str | None = None) -> list[schemas.Task]: ...

    def get_task(self, task_id: int) -> schemas.Task | None: ...

    def create_task(self, data: schemas.TaskCreate) -> schemas.Task: ...

    def update_task(self, task_id: int, patch: dict[str, Any]) -> schemas.Task | None: ...

    def list_meetings(self, brand_id: int) -> list[schemas.Meeting]: ...

    def get_meeting(self, meeting_id: int) -> schemas.Meeting | None: ...

    def create_meeting(self, data: schemas.MeetingCreate) -> schemas.Meeting: ...

    def update_meeting(self, meeting_id: int, patch: dict[str, Any]) -> schemas.Meeting | None: ...


class MemoryStore:
    """In-process store. Every mutation runs under one lock; concurrent patches to the same id are last-write-wins."""

    name = "memory"

    KINDS = ("brand", "financial", "ad_campaign", "ai_agent", "pmf", "task", "meeting")

    def __init__(self, clock: Callable[[], dt.datetime] = utcnow) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        # Counters survive reset() so an id is never handed out twice.
        self._counters = {kind: itertools.count(1) for kind in self.KINDS}
        self._rows: dict[str, dict[int, BaseModel]] = {kind: {} for kind in self.KINDS}

    def reset(self) -> None:
        with self._lock:
            self._rows = {kind: {} for kind in self.KINDS}
        logger.info("store.reset", store=self.name)

    # --- helpers --------------------------------------------------------

    def _rows_for(self, kind: str, brand_id: int) -> list[Any]:
        with self._lock:
            rows = [row for row in self._rows[kind].values() if row.brand_id == brand_id]
        return sorted(rows, key=lambda row: row.id)

    def _insert(self, kind: str, model: type[ModelT], fields: dict[str, Any]) -> ModelT:
        with self._lock:
            brand_id = fields.get("brand_id")
            if brand_id is not None and brand_id not in self._rows["brand"]:
                raise unknown_brand(brand_id)
            row = model.model_validate({**fields, "id": next(self._counters[kind])})
            self._rows[kind][row.id] = row
        logger.info("store.create", entity=kind, id=row.id)
        return row

    def _patch(
        self,
        kind: str,
        model: type[ModelT],
        row_id: int,
        patch: dict[str, Any],
        stamp: bool,
        merge: Callable[[ModelT, dict[str, Any]], dict[str, Any]] | None = None,
    ) -> ModelT | None:
        with self._lock:
            current = self._rows[kind].get(row_id)
            if current is None:
                logger.info("store.update", entity=kind, id=row_id, found=False)
                return None
            patch = {key: value for key, value in patch.items() if key not in {"id", "brand_id"}}
            fields = merge(current, patch) if merge else {**current.model_dump(), **patch}
            if stamp:
                fields["updated_at"] = self._clock()
            try:
                updated = model.model_validate(fields)
            except ValidationError as exc:
                raise validation_failed(f"Invalid {kind.replace('_', ' ')} data", exc) from exc
            self._rows[kind][row_id] = updated
        logger.info("store.update", entity=kind, id=row_id, found=True, fields=sorted(patch))
        return updated

    # --- brands ---------------------------------------------------------

    def list_brands(self) -> list[schemas.Brand]:
        with self._lock:
            return sorted(self._rows["brand"].values(), key=lambda row: row.id)

    def get_brand(self, brand_id: int) -> schemas.Brand | None:
        with self._lock:
            return self._rows["brand"].get(brand_id)

    def get_brand_by_code(self, code: str) -> schemas.Brand | None:
        return next((brand for brand in self.list_brands() if brand.code == code), None)

    def create_brand(self, data: schemas.BrandCreate) -> schemas.Brand:
        with self._lock:
            if self.get_brand_by_code(data.code) is not None:
                raise duplicate_brand_code(data.code)
            return self._insert("brand", schemas.Brand, {**data.model_dump(), "created_at": self._clock()})

    # --- financials -----------------------------------------------------

    def list_financials(self, brand_id: int, period: str | None = None) -> list[schemas.Financial]:
        rows = self._rows_for("financial", brand_id)
        cutoff = period_cutoff(period, self._clock())
        if cutoff is None:
            return rows
        return [row for row in rows if row.date >= cutoff]

    def create_financial(self, data: schemas.FinancialCreate) -> schemas.Financial:
        fields = data.model_dump()
        fields["date"] = fields["date"] or self._clock()
        return self._insert("financial", schemas.Financial, fields)

    # --- ad campaigns ---------------------------------------------------

    def list_ad_campaigns(self, brand_id: int) -> list[schemas.AdCampaign]:
        return self._rows_for("ad_campaign", brand_id)

    def get_ad_campaign(self, campaign_id: int) -> schemas.AdCampaign | None:
        with self._lock:
            return self._rows["ad_campaign"].get(campaign_id)

    def create_ad_campaign(self, data: schemas.AdCampaignCreate) -> schemas.AdCampaign:
        now = self._clock()
        return self._insert("ad_campaign", schemas.AdCampaign, {**data.model_dump(), "created_at": now, "updated_at": now})

    def update_ad_campaign(self, campaign_id: int, patch: dict[str, Any]) -> schemas.AdCampaign | None:
        return self._patch("ad_campaign", schemas.AdCampaign, campaign_id, patch, stamp=True)

    # --- ai agents ------------------------------------------------------

    def list_ai_agents(self, brand_id: int) -> list[schemas.AiAgent]:
        return self._rows_for("ai_agent", brand_id)

    def get_ai_agent(self, agent_id: int) -> schemas.AiAgent | None:
        with self._lock:
            return self._rows["ai_agent"].get(agent_id)

    def create_ai_agent(self, data: schemas.AiAgentCreate) -> schemas.AiAgent:
        now = self._clock()
        fields = data.model_dump(exclude={"metric_value", "metrics"})
        fields["metric"] = schemas.AgentMetric.for_agent(data.type, data.metric_value)
        fields.update(created_at=now, updated_at=now)
        return self._insert("ai_agent", schemas.AiAgent, fields)

    def update_ai_agent(self, agent_id: int, patch: dict[str, Any]) -> schemas.AiAgent | None:
        def merge(current: schemas.AiAgent, changes: dict[str, Any]) -> dict[str, Any]:
            changes = dict(changes)
            value = changes.pop("metric_value", current.metric.value if current.metric else None)
            fields = {**current.model_dump(exclude={"metrics"}), **changes}
            fields["metric"] = schemas.AgentMetric.for_agent(fields["type"], value)
            return fields

        return self._patch("ai_agent", schemas.AiAgent, agent_id, patch, stamp=True, merge=merge)

    # --- product-market fit ---------------------------------------------

    def get_product_market_fit(self, brand_id: int) -> schemas.ProductMarketFit | None:
        rows = self._rows_for("pmf", brand_id)
        if not rows:
            return None
        return max(rows, key=lambda row: (row.date, row.id))

    def create_product_market_fit(self, data: schemas.ProductMarketFitCreate) -> schemas.ProductMarketFit:
        fields = data.model_dump()
        fields["date"] = fields["date"] or self._clock()
        return self._insert("pmf", schemas.ProductMarketFit, fields)

    def update_product_market_fit(self, pmf_id: int, patch: dict[str, Any]) -> schemas.ProductMarketFit | None:
        return self._patch("pmf", schemas.ProductMarketFit, pmf_id, patch, stamp=False)

    # --- tasks ----------------------------------------------------------

    def list_tasks(self, brand_id: int, status: str | None = None) -> list[schemas.Task]:
        rows = self._rows_for("task", brand_id)
        if status:
            rows = [row for row in rows if row.status == status]
        return rows

    def get_task(self, task_id: int) -> schemas.Task | None:
        with self._lock:
            return self._rows["task"].get(task_id)

    def create_task(self, data: schemas.TaskCreate) -> schemas.Task:
        now = self._clock()
        return self._insert("task", schemas.Task, {**data.model_dump(), "created_at": now, "updated_at": now})

    def update_task(self, task_id: int, patch: dict[str, Any]) -> schemas.Task | None:
        return self._patch("task", schemas.Task, task_id, patch, stamp=True)

    # --- meetings -------------------------------------------------------

    def list_meetings(self, brand_id: int) -> list[schemas.Meeting]:
        return self._rows_for("meeting", brand_id)

    def get_meeting(self, meeting_id: int) -> schemas.Meeting | None:
        with self._lock:
            return self._rows["meeting"].get(meeting_id)

    def create_meeting(self, data: schemas.MeetingCreate) -> schemas.Meeting:
        return self._insert("meeting", schemas.Meeting, {**data.model_dump(), "created_at": self._clock()})

    def update_meeting(self, meeting_id: int, patch: dict[str, Any]) -> schemas.Meeting | None:
        def merge(current: schemas.Meeting, changes: dict[str, Any]) -> dict[str, Any]:
            fields = {**current.model_dump(), **changes}
            check_meeting_window(fields["start_time"], fields["end_time"])
            return fields

        return self._patch("meeting", schemas.Meeting, meeting_id, patch, stamp=False, merge=merge)
