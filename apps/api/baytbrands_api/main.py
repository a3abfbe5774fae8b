from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import schemas
from .config import Settings, get_settings
from .database import SessionLocal, init_db
from .errors import DashboardError, FieldError, ValidationFailed
from .logs import configure_logging, get_logger
from .services.aggregation import BrandAggregator
from .services.composer import compose_dashboard
from .services.panels import build_panel
from .services.seed import reset_all_data, seed_demo_data
from .services.sql_store import SqlStore
from .services.store import DashboardStore, MemoryStore, utcnow

settings = get_settings()
logger = get_logger(__name__)

INVALID_MESSAGES = {
    "brands": "Invalid brand data",
    "financials": "Invalid financial data",
    "ad-campaigns": "Invalid campaign data",
    "ai-agents": "Invalid agent data",
    "product-market-fit": "Invalid PMF data",
    "tasks": "Invalid task data",
    "meetings": "Invalid meeting data",
}


def build_store(settings: Settings) -> DashboardStore:
    if settings.store_backend == "sql":
        init_db()
        return SqlStore(SessionLocal)
    return MemoryStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings)
    if app.state.store is None:
        app.state.store = build_store(settings)
        if settings.seed_demo_data and not app.state.store.list_brands():
            seed_demo_data(app.state.store)
    logger.info("app.startup", app=settings.app_name, store=app.state.store.name)
    yield


def get_store(request: Request) -> DashboardStore:
    return request.app.state.store


def _field_name(loc: tuple) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path")]
    return ".".join(parts) or "body"


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    segments = request.url.path.strip("/").split("/")
    message = INVALID_MESSAGES.get(segments[1] if len(segments) > 1 else "", "Invalid request")
    errors = [FieldError(field=_field_name(err["loc"]), message=err["msg"]) for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"message": message, "errors": [err.model_dump() for err in errors]},
    )


async def dashboard_error_handler(_: Request, exc: DashboardError) -> JSONResponse:
    content: dict = {"message": exc.message}
    if isinstance(exc, ValidationFailed):
        content["errors"] = [err.model_dump() for err in exc.field_errors]
    if exc.status_code >= 500:
        logger.error("api.error", code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=content)


async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("api.unhandled_error", method=request.method, path=request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


router = APIRouter(prefix="/api")


@router.get("/health")
def health(store: DashboardStore = Depends(get_store)) -> dict:
    return {"status": "ok", "store": store.name}


@router.post("/admin/reset")
def reset(seed: bool = Query(default=True), store: DashboardStore = Depends(get_store)) -> dict:
    counts = reset_all_data(store, reseed=seed)
    return {"status": "ok", "seeded": counts}


# --- brands ---------------------------------------------------------------


@router.get("/brands", response_model=list[schemas.Brand])
def list_brands(store: DashboardStore = Depends(get_store)):
    return store.list_brands()


@router.get("/brands/{code}", response_model=schemas.Brand)
def get_brand(code: str, store: DashboardStore = Depends(get_store)):
    brand = store.get_brand_by_code(code)
    if brand is None:
        raise HTTPException(status_code=404, detail="Brand not found")
    return brand


@router.post("/brands", response_model=schemas.Brand, status_code=201)
def create_brand(body: schemas.BrandCreate, store: DashboardStore = Depends(get_store)):
    return store.create_brand(body)


# --- financials -----------------------------------------------------------


@router.get("/financials/{brand_id}", response_model=list[schemas.Financial])
def list_financials(
    brand_id: int,
    period: schemas.FinancialPeriod | None = Query(default=None),
    store: DashboardStore = Depends(get_store),
):
    return store.list_financials(brand_id, period=period)


@router.post("/financials", response_model=schemas.Financial, status_code=201)
def create_financial(body: schemas.FinancialCreate, store: DashboardStore = Depends(get_store)):
    return store.create_financial(body)


# --- ad campaigns ---------------------------------------------------------


@router.get("/ad-campaigns/{brand_id}", response_model=list[schemas.AdCampaign])
def list_ad_campaigns(brand_id: int, store: DashboardStore = Depends(get_store)):
    return store.list_ad_campaigns(brand_id)


@router.get("/ad-campaigns/item/{campaign_id}", response_model=schemas.AdCampaign)
def get_ad_campaign(campaign_id: int, store: DashboardStore = Depends(get_store)):
    campaign = store.get_ad_campaign(campaign_id)
    if campaign is None:
        raise HTTPException(status_code=404, detail="Ad campaign not found")
    return campaign


@router.post("/ad-campaigns", response_model=schemas.AdCampaign, status_code=201)
def create_ad_campaign(body: schemas.AdCampaignCreate, store: DashboardStore = Depends(get_store)):
    return store.create_ad_campaign(body)


@router.patch("/ad-campaigns/{campaign_id}", response_model=schemas.AdCampaign)
def update_ad_campaign(campaign_id: int, body: schemas.AdCampaignUpdate, store: DashboardStore = Depends(get_store)):
    campaign = store.update_ad_campaign(campaign_id, body.patch())
    if campaign is None:
        raise HTTPException(status_code=404, detail="Ad campaign not found")
    return campaign


# --- ai agents ------------------------------------------------------------


@router.get("/ai-agents/{brand_id}", response_model=list[schemas.AiAgent])
def list_ai_agents(brand_id: int, store: DashboardStore = Depends(get_store)):
    return store.list_ai_agents(brand_id)


@router.get("/ai-agents/item/{agent_id}", response_model=schemas.AiAgent)
def get_ai_agent(agent_id: int, store: DashboardStore = Depends(get_store)):
    agent = store.get_ai_agent(agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail="AI agent not found")
    return agent


@router.post("/ai-agents", response_model=schemas.AiAgent, status_code=201)
def create_ai_agent(body: schemas.AiAgentCreate, store: DashboardStore = Depends(get_store)):
    return store.create_ai_agent(body)


@router.patch("/ai-agents/{agent_id}", response_model=schemas.AiAgent)
def update_ai_agent(agent_id: int, body: schemas.AiAgentUpdate, store: DashboardStore = Depends(get_store)):
    agent = store.update_ai_agent(agent_id, body.patch())
    if agent is None:
        raise HTTPException(status_code=404, detail="AI agent not found")
    return agent


# --- product-market fit ---------------------------------------------------


@router.get("/product-market-fit/{brand_id}", response_model=schemas.ProductMarketFit)
def get_product_market_fit(brand_id: int, store: DashboardStore = Depends(get_store)):
    pmf = store.get_product_market_fit(brand_id)
    if pmf is None:
        raise HTTPException(status_code=404, detail="Product market fit data not found")
    return pmf


@router.post("/product-market-fit", response_model=schemas.ProductMarketFit, status_code=201)
def create_product_market_fit(body: schemas.ProductMarketFitCreate, store: DashboardStore = Depends(get_store)):
    return store.create_product_market_fit(body)


@router.patch("/product-market-fit/{pmf_id}", response_model=schemas.ProductMarketFit)
def update_product_market_fit(
    pmf_id: int, body: schemas.ProductMarketFitUpdate, store: DashboardStore = Depends(get_store)
):
    pmf = store.update_product_market_fit(pmf_id, body.patch())
    if pmf is None:
        raise HTTPException(status_code=404, detail="Product market fit data not found")
    return pmf


# --- tasks ----------------------------------------------------------------


@router.get("/tasks/{brand_id}", response_model=list[schemas.Task])
def list_tasks(
    brand_id: int,
    status: schemas.TaskStatus | None = Query(default=None),
    store: DashboardStore = Depends(get_store),
):
    return store.list_tasks(brand_id, status=status)


@router.get("/tasks/item/{task_id}", response_model=schemas.Task)
def get_task(task_id: int, store: DashboardStore = Depends(get_store)):
    task = store.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.post("/tasks", response_model=schemas.Task, status_code=201)
def create_task(body: schemas.TaskCreate, store: DashboardStore = Depends(get_store)):
    return store.create_task(body)


@router.patch("/tasks/{task_id}", response_model=schemas.Task)
def update_task(task_id: int, body: schemas.TaskUpdate, store: DashboardStore = Depends(get_store)):
    task = store.update_task(task_id, body.patch())
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


# --- meetings -------------------------------------------------------------


@router.get("/meetings/{brand_id}", response_model=list[schemas.Meeting])
def list_meetings(brand_id: int, store: DashboardStore = Depends(get_store)):
    return store.list_meetings(brand_id)


@router.get("/meetings/item/{meeting_id}", response_model=schemas.Meeting)
def get_meeting(meeting_id: int, store: DashboardStore = Depends(get_store)):
    meeting = store.get_meeting(meeting_id)
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return meeting


@router.post("/meetings", response_model=schemas.Meeting, status_code=201)
def create_meeting(body: schemas.MeetingCreate, store: DashboardStore = Depends(get_store)):
    return store.create_meeting(body)


@router.patch("/meetings/{meeting_id}", response_model=schemas.Meeting)
def update_meeting(meeting_id: int, body: schemas.MeetingUpdate, store: DashboardStore = Depends(get_store)):
    meeting = store.update_meeting(meeting_id, body.patch())
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return meeting


# --- composed dashboard ---------------------------------------------------


async def _dashboard_view(code: str, task_filter: str, store: DashboardStore) -> schemas.DashboardView:
    aggregate = await BrandAggregator(store, settings.fetch_timeout_seconds).resolve(code)
    if aggregate.error is not None and aggregate.error.code == "not_found":
        raise HTTPException(status_code=404, detail="Brand not found")
    return compose_dashboard(
        aggregate,
        utcnow(),
        operator_initials=settings.operator_initials,
        ai_actor=settings.ai_actor,
        task_filter=task_filter,
        currency_symbol=settings.currency_symbol,
    )


@router.get("/dashboard/{code}", response_model=schemas.DashboardView)
async def dashboard(
    code: str,
    task_filter: schemas.TaskFilter = Query(default="all", alias="taskFilter"),
    store: DashboardStore = Depends(get_store),
):
    return await _dashboard_view(code, task_filter, store)


@router.get("/dashboard/{code}/panels/{route_key}", response_model=schemas.PanelPayload)
async def dashboard_panel(
    code: str,
    route_key: str,
    task_filter: schemas.TaskFilter = Query(default="all", alias="taskFilter"),
    store: DashboardStore = Depends(get_store),
):
    view = await _dashboard_view(code, task_filter, store)
    panel = build_panel(route_key, view)
    if panel is None:
        raise HTTPException(status_code=404, detail="Panel not found")
    return panel


def create_app(store: DashboardStore | None = None) -> FastAPI:
    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.state.store = store
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin, "http://localhost:3000", "http://127.0.0.1:3000"],
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(DashboardError, dashboard_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)
    return app


app = create_app()
