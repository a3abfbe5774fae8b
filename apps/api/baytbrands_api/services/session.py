from __future__ import annotations

import asyncio
import datetime as dt
from collections import Counter
from typing import Any, Callable

from .. import schemas
from ..config import Settings, get_settings
from ..errors import DashboardError, NetworkError, NotFound, error_info
from ..logs import get_logger
from .aggregation import BrandAggregator
from .composer import compose_dashboard, toggled_status
from .store import DashboardStore, utcnow

logger = get_logger(__name__)


class DashboardSession:
    """Client-side state for one dashboard viewer.

    Holds the active brand and the last applied aggregate and view. Results of a
    fetch started for a brand that is no longer active are dropped, as are results
    older than the ones already applied. Mutations confirm with the store before
    anything changes locally, then refetch. Failures become error notifications;
    no method raises.
    """

    def __init__(
        self,
        aggregator: BrandAggregator,
        store: DashboardStore,
        settings: Settings | None = None,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self.aggregator = aggregator
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock
        self.active_brand: str | None = None
        self.task_filter: schemas.TaskFilter = "all"
        self.aggregate: schemas.BrandAggregate | None = None
        self.view: schemas.DashboardView | None = None
        self.notifications: list[schemas.Notification] = []
        self._in_flight: Counter[str] = Counter()
        self._issued = 0
        self._applied = 0

    @property
    def is_loading(self) -> bool:
        return self.active_brand is not None and self._in_flight[self.active_brand] > 0

    # --- fetching -------------------------------------------------------

    async def select_brand(self, brand_code: str) -> bool:
        self.active_brand = brand_code
        return await self._load(brand_code)

    async def refetch(self) -> bool:
        if self.active_brand is None:
            return False
        return await self._load(self.active_brand)

    def set_task_filter(self, task_filter: schemas.TaskFilter) -> None:
        self.task_filter = task_filter
        if self.aggregate is not None:
            self.view = self._compose(self.aggregate)

    def _compose(self, aggregate: schemas.BrandAggregate) -> schemas.DashboardView:
        return compose_dashboard(
            aggregate,
            self.clock(),
            operator_initials=self.settings.operator_initials,
            ai_actor=self.settings.ai_actor,
            task_filter=self.task_filter,
            currency_symbol=self.settings.currency_symbol,
        )

    async def _load(self, brand_code: str) -> bool:
        """Returns True when the fetched aggregate was applied."""
        self._issued += 1
        token = self._issued
        self._in_flight[brand_code] += 1
        try:
            aggregate = await self.aggregator.resolve(brand_code)
        except Exception as exc:
            logger.exception("session.fetch_failed", brand_code=brand_code)
            aggregate = schemas.BrandAggregate(brand_code=brand_code, error=error_info(exc))
        finally:
            self._in_flight[brand_code] -= 1
            if not self._in_flight[brand_code]:
                del self._in_flight[brand_code]

        if brand_code != self.active_brand or token < self._applied:
            logger.info("session.stale_discarded", brand_code=brand_code, active_brand=self.active_brand)
            return False
        self._applied = token
        self.aggregate = aggregate
        self.view = self._compose(aggregate)
        return True

    # --- mutations ------------------------------------------------------

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        timeout = self.settings.fetch_timeout_seconds
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise NetworkError(f"Request timed out after {timeout:g}s") from exc

    def _notify(self, level: str, title: str, message: str) -> None:
        self.notifications.append(schemas.Notification(level=level, title=title, message=message))
        logger.info("session.notify", level=level, title=title, notification=message)

    def _fail(self, what: str, exc: Exception) -> None:
        if not isinstance(exc, DashboardError):
            logger.exception("session.mutation_failed", what=what)
        self._notify("error", "Error", f"Failed to update {what}: {error_info(exc).message}")

    async def set_campaign_status(self, campaign_id: int, status: str) -> schemas.AdCampaign | None:
        try:
            updated = await self._call(self.store.update_ad_campaign, campaign_id, {"status": status})
            if updated is None:
                raise NotFound("Ad campaign not found")
        except Exception as exc:
            self._fail("campaign", exc)
            return None
        await self.refetch()
        self._notify("success", "Campaign updated", f"{updated.name} is now {updated.status}")
        return updated

    async def toggle_campaign_status(self, campaign_id: int) -> schemas.AdCampaign | None:
        try:
            current = await self._call(self.store.get_ad_campaign, campaign_id)
            if current is None:
                raise NotFound("Ad campaign not found")
        except Exception as exc:
            self._fail("campaign", exc)
            return None
        return await self.set_campaign_status(campaign_id, toggled_status(current.status))

    async def set_task_completed(self, task_id: int, completed: bool) -> schemas.Task | None:
        try:
            updated = await self._call(self.store.update_task, task_id, {"completed": completed})
            if updated is None:
                raise NotFound("Task not found")
        except Exception as exc:
            self._fail("task", exc)
            return None
        await self.refetch()
        state = "completed" if updated.completed else "reopened"
        self._notify("success", "Task updated", f"{updated.title} {state}")
        return updated

    async def toggle_task(self, task_id: int) -> schemas.Task | None:
        try:
            current = await self._call(self.store.get_task, task_id)
            if current is None:
                raise NotFound("Task not found")
        except Exception as exc:
            self._fail("task", exc)
            return None
        return await self.set_task_completed(task_id, not current.completed)
