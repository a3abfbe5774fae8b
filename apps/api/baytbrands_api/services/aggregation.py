from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

from .. import schemas
from ..errors import NetworkError, NotFound, error_info
from ..logs import get_logger
from .store import DashboardStore

logger = get_logger(__name__)


class BrandAggregator:
    """Resolves a brand code into everything the dashboard renders for that brand.

    The brand lookup runs first. Once the id is known the six dependent fetches run
    concurrently on worker threads, each bounded by ``timeout_seconds``. A failing
    fetch never discards data from the others; the aggregate carries the first
    error in fetch order.
    """

    def __init__(self, store: DashboardStore, timeout_seconds: float = 5.0) -> None:
        self.store = store
        self.timeout_seconds = timeout_seconds

    def _fetchers(self) -> dict[str, Callable[[int], Any]]:
        return {
            "financials": self.store.list_financials,
            "ad_campaigns": self.store.list_ad_campaigns,
            "ai_agents": self.store.list_ai_agents,
            "product_market_fit": self.store.get_product_market_fit,
            "tasks": self.store.list_tasks,
            "meetings": self.store.list_meetings,
        }

    async def _call(self, label: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise NetworkError(f"Timed out loading {label.replace('_', ' ')} after {self.timeout_seconds:g}s") from exc

    async def resolve(self, brand_code: str) -> schemas.BrandAggregate:
        started = time.perf_counter()
        aggregate = await self._resolve(brand_code)
        logger.info(
            "aggregate.resolved",
            brand_code=brand_code,
            brand_id=aggregate.brand_id,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            error=aggregate.error.code if aggregate.error else None,
        )
        return aggregate

    async def _resolve(self, brand_code: str) -> schemas.BrandAggregate:
        try:
            brand = await self._call("brand", self.store.get_brand_by_code, brand_code)
        except Exception as exc:
            logger.warning("aggregate.fetch_failed", brand_code=brand_code, fetch="brand", error=repr(exc))
            return schemas.BrandAggregate(brand_code=brand_code, error=error_info(exc))
        if brand is None:
            return schemas.BrandAggregate(brand_code=brand_code, error=NotFound("Brand not found").info())

        fetchers = self._fetchers()
        results = await asyncio.gather(
            *(self._call(name, fetchers[name], brand.id) for name in schemas.BrandAggregate.FETCH_ORDER),
            return_exceptions=True,
        )

        data: dict[str, Any] = {}
        error = None
        for name, result in zip(schemas.BrandAggregate.FETCH_ORDER, results):
            if isinstance(result, Exception):
                logger.warning("aggregate.fetch_failed", brand_code=brand_code, fetch=name, error=repr(result))
                if error is None:
                    error = error_info(result)
                continue
            if isinstance(result, BaseException):
                raise result
            data[name] = result

        return schemas.BrandAggregate(
            brand_code=brand_code,
            brand_id=brand.id,
            brand=brand,
            error=error,
            is_loading=False,
            **data,
        )
