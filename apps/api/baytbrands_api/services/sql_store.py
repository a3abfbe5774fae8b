from __future__ import annotations

import datetime as dt
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from .. import models, schemas
from ..errors import validation_failed
from ..logs import get_logger
from .store import check_meeting_window, duplicate_brand_code, period_cutoff, unknown_brand, utcnow

logger = get_logger(__name__)


def _agent_schema(row: models.AiAgent) -> schemas.AiAgent:
    return schemas.AiAgent(
        id=row.id,
        brand_id=row.brand_id,
        name=row.name,
        type=row.type,
        success_rate=row.success_rate,
        usage_count=row.usage_count,
        cost=row.cost,
        metric=schemas.AgentMetric.for_agent(row.type, row.metric_value),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlStore:
    """SQLAlchemy-backed store; every call runs in its own short-lived session."""

    name = "sql"

    def __init__(self, session_factory: sessionmaker[Session], clock: Callable[[], dt.datetime] = utcnow) -> None:
        self._session_factory = session_factory
        self._clock = clock

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def reset(self) -> None:
        with self._session() as db:
            db.execute(delete(models.Meeting))
            db.execute(delete(models.Task))
            db.execute(delete(models.ProductMarketFit))
            db.execute(delete(models.AiAgent))
            db.execute(delete(models.AdCampaign))
            db.execute(delete(models.Financial))
            db.execute(delete(models.Brand))
            db.commit()
        logger.info("store.reset", store=self.name)

    # --- helpers --------------------------------------------------------

    def _list(self, model: type, brand_id: int, *criteria: Any) -> list[Any]:
        with self._session() as db:
            stmt = select(model).where(model.brand_id == brand_id, *criteria).order_by(model.id)
            return list(db.scalars(stmt).all())

    def _insert(self, db: Session, row: Any, entity: str) -> Any:
        brand_id = getattr(row, "brand_id", None)
        if brand_id is not None and db.get(models.Brand, brand_id) is None:
            raise unknown_brand(brand_id)
        db.add(row)
        db.commit()
        db.refresh(row)
        logger.info("store.create", entity=entity, id=row.id)
        return row

    def _patch(
        self,
        model: type,
        to_schema: Callable[[Any], Any],
        row_id: int,
        patch: dict[str, Any],
        stamp: bool,
        entity: str,
        check: Callable[[Any], None] | None = None,
    ) -> Any | None:
        columns = set(model.__table__.columns.keys()) - {"id", "brand_id"}
        with self._session() as db:
            row = db.get(model, row_id)
            if row is None:
                logger.info("store.update", entity=entity, id=row_id, found=False)
                return None
            applied = {key: value for key, value in patch.items() if key in columns}
            for key, value in applied.items():
                setattr(row, key, value)
            if stamp:
                row.updated_at = self._clock()
            try:
                result = to_schema(row)
                if check:
                    check(result)
            except ValidationError as exc:
                db.rollback()
                raise validation_failed(f"Invalid {entity.replace('_', ' ')} data", exc) from exc
            except Exception:
                db.rollback()
                raise
            db.commit()
        logger.info("store.update", entity=entity, id=row_id, found=True, fields=sorted(applied))
        return result

    # --- brands ---------------------------------------------------------

    def list_brands(self) -> list[schemas.Brand]:
        with self._session() as db:
            rows = db.scalars(select(models.Brand).order_by(models.Brand.id)).all()
            return [schemas.Brand.model_validate(row) for row in rows]

    def get_brand(self, brand_id: int) -> schemas.Brand | None:
        with self._session() as db:
            row = db.get(models.Brand, brand_id)
            return schemas.Brand.model_validate(row) if row else None

    def get_brand_by_code(self, code: str) -> schemas.Brand | None:
        with self._session() as db:
            row = db.scalars(select(models.Brand).where(models.Brand.code == code)).first()
            return schemas.Brand.model_validate(row) if row else None

    def create_brand(self, data: schemas.BrandCreate) -> schemas.Brand:
        with self._session() as db:
            if db.scalars(select(models.Brand).where(models.Brand.code == data.code)).first() is not None:
                raise duplicate_brand_code(data.code)
            row = models.Brand(**data.model_dump(), created_at=self._clock())
            return schemas.Brand.model_validate(self._insert(db, row, "brand"))

    # --- financials -----------------------------------------------------

    def list_financials(self, brand_id: int, period: str | None = None) -> list[schemas.Financial]:
        cutoff = period_cutoff(period, self._clock())
        criteria = [models.Financial.date >= cutoff] if cutoff is not None else []
        return [schemas.Financial.model_validate(row) for row in self._list(models.Financial, brand_id, *criteria)]

    def create_financial(self, data: schemas.FinancialCreate) -> schemas.Financial:
        fields = data.model_dump()
        fields["date"] = fields["date"] or self._clock()
        with self._session() as db:
            return schemas.Financial.model_validate(self._insert(db, models.Financial(**fields), "financial"))

    # --- ad campaigns ---------------------------------------------------

    def list_ad_campaigns(self, brand_id: int) -> list[schemas.AdCampaign]:
        return [schemas.AdCampaign.model_validate(row) for row in self._list(models.AdCampaign, brand_id)]

    def get_ad_campaign(self, campaign_id: int) -> schemas.AdCampaign | None:
        with self._session() as db:
            row = db.get(models.AdCampaign, campaign_id)
            return schemas.AdCampaign.model_validate(row) if row else None

    def create_ad_campaign(self, data: schemas.AdCampaignCreate) -> schemas.AdCampaign:
        now = self._clock()
        with self._session() as db:
            row = models.AdCampaign(**data.model_dump(), created_at=now, updated_at=now)
            return schemas.AdCampaign.model_validate(self._insert(db, row, "ad_campaign"))

    def update_ad_campaign(self, campaign_id: int, patch: dict[str, Any]) -> schemas.AdCampaign | None:
        return self._patch(
            models.AdCampaign, schemas.AdCampaign.model_validate, campaign_id, patch, stamp=True, entity="ad_campaign"
        )

    # --- ai agents ------------------------------------------------------

    def list_ai_agents(self, brand_id: int) -> list[schemas.AiAgent]:
        return [_agent_schema(row) for row in self._list(models.AiAgent, brand_id)]

    def get_ai_agent(self, agent_id: int) -> schemas.AiAgent | None:
        with self._session() as db:
            row = db.get(models.AiAgent, agent_id)
            return _agent_schema(row) if row else None

    def create_ai_agent(self, data: schemas.AiAgentCreate) -> schemas.AiAgent:
        now = self._clock()
        with self._session() as db:
            row = models.AiAgent(**data.model_dump(exclude={"metrics"}), created_at=now, updated_at=now)
            return _agent_schema(self._insert(db, row, "ai_agent"))

    def update_ai_agent(self, agent_id: int, patch: dict[str, Any]) -> schemas.AiAgent | None:
        return self._patch(models.AiAgent, _agent_schema, agent_id, patch, stamp=True, entity="ai_agent")

    # --- product-market fit ---------------------------------------------

    def get_product_market_fit(self, brand_id: int) -> schemas.ProductMarketFit | None:
        with self._session() as db:
            stmt = (
                select(models.ProductMarketFit)
                .where(models.ProductMarketFit.brand_id == brand_id)
                .order_by(models.ProductMarketFit.date.desc(), models.ProductMarketFit.id.desc())
            )
            row = db.scalars(stmt).first()
            return schemas.ProductMarketFit.model_validate(row) if row else None

    def create_product_market_fit(self, data: schemas.ProductMarketFitCreate) -> schemas.ProductMarketFit:
        fields = data.model_dump()
        fields["date"] = fields["date"] or self._clock()
        with self._session() as db:
            row = models.ProductMarketFit(**fields)
            return schemas.ProductMarketFit.model_validate(self._insert(db, row, "pmf"))

    def update_product_market_fit(self, pmf_id: int, patch: dict[str, Any]) -> schemas.ProductMarketFit | None:
        return self._patch(
            models.ProductMarketFit,
            schemas.ProductMarketFit.model_validate,
            pmf_id,
            patch,
            stamp=False,
            entity="pmf",
        )

    # --- tasks ----------------------------------------------------------

    def list_tasks(self, brand_id: int, status: str | None = None) -> list[schemas.Task]:
        criteria = [models.Task.status == status] if status else []
        return [schemas.Task.model_validate(row) for row in self._list(models.Task, brand_id, *criteria)]

    def get_task(self, task_id: int) -> schemas.Task | None:
        with self._session() as db:
            row = db.get(models.Task, task_id)
            return schemas.Task.model_validate(row) if row else None

    def create_task(self, data: schemas.TaskCreate) -> schemas.Task:
        now = self._clock()
        with self._session() as db:
            row = models.Task(**data.model_dump(), created_at=now, updated_at=now)
            return schemas.Task.model_validate(self._insert(db, row, "task"))

    def update_task(self, task_id: int, patch: dict[str, Any]) -> schemas.Task | None:
        return self._patch(models.Task, schemas.Task.model_validate, task_id, patch, stamp=True, entity="task")

    # --- meetings -------------------------------------------------------

    def list_meetings(self, brand_id: int) -> list[schemas.Meeting]:
        return [schemas.Meeting.model_validate(row) for row in self._list(models.Meeting, brand_id)]

    def get_meeting(self, meeting_id: int) -> schemas.Meeting | None:
        with self._session() as db:
            row = db.get(models.Meeting, meeting_id)
            return schemas.Meeting.model_validate(row) if row else None

    def create_meeting(self, data: schemas.MeetingCreate) -> schemas.Meeting:
        with self._session() as db:
            row = models.Meeting(**data.model_dump(), created_at=self._clock())
            return schemas.Meeting.model_validate(self._insert(db, row, "meeting"))

    def update_meeting(self, meeting_id: int, patch: dict[str, Any]) -> schemas.Meeting | None:
        return self._patch(
            models.Meeting,
            schemas.Meeting.model_validate,
            meeting_id,
            patch,
            stamp=False,
            entity="meeting",
            check=lambda meeting: check_meeting_window(meeting.start_time, meeting.end_time),
        )
