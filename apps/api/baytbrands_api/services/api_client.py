from __future__ import annotations

from typing import Any, TypeVar

import httpx
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from .. import schemas
from ..errors import FieldError, InternalError, NetworkError, ValidationFailed
from ..logs import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ApiStore:
    """DashboardStore over the REST surface, for running the aggregator outside the API process.

    Timeouts and transport failures surface as NetworkError, which callers may retry.
    """

    name = "http"

    def __init__(self, base_url: str = "", timeout: float = 5.0, client: httpx.Client | None = None) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response | None:
        try:
            res = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("api.timeout", method=method, path=path)
            raise NetworkError(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            logger.warning("api.transport_error", method=method, path=path, error=str(exc))
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        if res.status_code == 404:
            return None
        if res.status_code == 400:
            body = res.json()
            raise ValidationFailed(
                body.get("message", "Invalid request"),
                [FieldError.model_validate(err) for err in body.get("errors", [])],
            )
        if res.status_code >= 500:
            raise InternalError(res.json().get("message", "Internal server error"))
        res.raise_for_status()
        return res

    def _get_one(self, model: type[ModelT], path: str) -> ModelT | None:
        res = self._request("GET", path)
        return model.model_validate(res.json()) if res is not None else None

    def _get_many(self, model: type[ModelT], path: str, params: dict[str, str] | None = None) -> list[ModelT]:
        res = self._request("GET", path, params=params)
        if res is None:
            return []
        return [model.model_validate(row) for row in res.json()]

    def _post(self, model: type[ModelT], path: str, data: BaseModel) -> ModelT:
        res = self._request("POST", path, json=data.model_dump(mode="json", by_alias=True, exclude_none=True))
        if res is None:
            raise InternalError(f"POST {path} returned 404")
        return model.model_validate(res.json())

    def _patch(self, model: type[ModelT], path: str, patch: dict[str, Any]) -> ModelT | None:
        body = jsonable_encoder({to_camel(key): value for key, value in patch.items()})
        res = self._request("PATCH", path, json=body)
        return model.model_validate(res.json()) if res is not None else None

    def reset(self) -> None:
        self._request("POST", "/api/admin/reset", params={"seed": "false"})

    def list_brands(self) -> list[schemas.Brand]:
        return self._get_many(schemas.Brand, "/api/brands")

    def get_brand(self, brand_id: int) -> schemas.Brand | None:
        return next((brand for brand in self.list_brands() if brand.id == brand_id), None)

    def get_brand_by_code(self, code: str) -> schemas.Brand | None:
        return self._get_one(schemas.Brand, f"/api/brands/{code}")

    def create_brand(self, data: schemas.BrandCreate) -> schemas.Brand:
        return self._post(schemas.Brand, "/api/brands", data)

    def list_financials(self, brand_id: int, period: str | None = None) -> list[schemas.Financial]:
        params = {"period": period} if period else None
        return self._get_many(schemas.Financial, f"/api/financials/{brand_id}", params=params)

    def create_financial(self, data: schemas.FinancialCreate) -> schemas.Financial:
        return self._post(schemas.Financial, "/api/financials", data)

    def list_ad_campaigns(self, brand_id: int) -> list[schemas.AdCampaign]:
        return self._get_many(schemas.AdCampaign, f"/api/ad-campaigns/{brand_id}")

    def get_ad_campaign(self, campaign_id: int) -> schemas.AdCampaign | None:
        return self._get_one(schemas.AdCampaign, f"/api/ad-campaigns/item/{campaign_id}")

    def create_ad_campaign(self, data: schemas.AdCampaignCreate) -> schemas.AdCampaign:
        return self._post(schemas.AdCampaign, "/api/ad-campaigns", data)

    def update_ad_campaign(self, campaign_id: int, patch: dict[str, Any]) -> schemas.AdCampaign | None:
        return self._patch(schemas.AdCampaign, f"/api/ad-campaigns/{campaign_id}", patch)

    def list_ai_agents(self, brand_id: int) -> list[schemas.AiAgent]:
        return self._get_many(schemas.AiAgent, f"/api/ai-agents/{brand_id}")

    def get_ai_agent(self, agent_id: int) -> schemas.AiAgent | None:
        return self._get_one(schemas.AiAgent, f"/api/ai-agents/item/{agent_id}")

    def create_ai_agent(self, data: schemas.AiAgentCreate) -> schemas.AiAgent:
        return self._post(schemas.AiAgent, "/api/ai-agents", data)

    def update_ai_agent(self, agent_id: int, patch: dict[str, Any]) -> schemas.AiAgent | None:
        return self._patch(schemas.AiAgent, f"/api/ai-agents/{agent_id}", patch)

    def get_product_market_fit(self, brand_id: int) -> schemas.ProductMarketFit | None:
        return self._get_one(schemas.ProductMarketFit, f"/api/product-market-fit/{brand_id}")

    def create_product_market_fit(self, data: schemas.ProductMarketFitCreate) -> schemas.ProductMarketFit:
        return self._post(schemas.ProductMarketFit, "/api/product-market-fit", data)

    def update_product_market_fit(self, pmf_id: int, patch: dict[str, Any]) -> schemas.ProductMarketFit | None:
        return self._patch(schemas.ProductMarketFit, f"/api/product-market-fit/{pmf_id}", patch)

    def list_tasks(self, brand_id: int, status: str | None = None) -> list[schemas.Task]:
        params = {"status": status} if status else None
        return self._get_many(schemas.Task, f"/api/tasks/{brand_id}", params=params)

    def get_task(self, task_id: int) -> schemas.Task | None:
        return self._get_one(schemas.Task, f"/api/tasks/item/{task_id}")

    def create_task(self, data: schemas.TaskCreate) -> schemas.Task:
        return self._post(schemas.Task, "/api/tasks", data)

    def update_task(self, task_id: int, patch: dict[str, Any]) -> schemas.Task | None:
        return self._patch(schemas.Task, f"/api/tasks/{task_id}", patch)

    def list_meetings(self, brand_id: int) -> list[schemas.Meeting]:
        return self._get_many(schemas.Meeting, f"/api/meetings/{brand_id}")

    def get_meeting(self, meeting_id: int) -> schemas.Meeting | None:
        return self._get_one(schemas.Meeting, f"/api/meetings/item/{meeting_id}")

    def create_meeting(self, data: schemas.MeetingCreate) -> schemas.Meeting:
        return self._post(schemas.Meeting, "/api/meetings", data)

    def update_meeting(self, meeting_id: int, patch: dict[str, Any]) -> schemas.Meeting | None:
        return self._patch(schemas.Meeting, f"/api/meetings/{meeting_id}", patch)
