from __future__ import annotations

import datetime as dt

from .. import schemas
from ..logs import get_logger
from .store import DashboardStore, utcnow

logger = get_logger(__name__)

DEMO_BRANDS = [
    ("HydraBark", "HydraBark", "/hydraBark-logo.png"),
    ("FitFluence", "FitFluence", "/fitFluence-logo.png"),
    ("EcoVibe", "EcoVibe", "/ecoVibe-logo.png"),
]


def _at(day: dt.datetime, hour: int, days: int = 0) -> dt.datetime:
    return (day + dt.timedelta(days=days)).replace(hour=hour, minute=0, second=0, microsecond=0)


def seed_demo_data(store: DashboardStore, now: dt.datetime | None = None) -> dict[str, int]:
    """Populates the three demo brands. Only HydraBark carries child records."""
    now = now or utcnow()
    brands = [store.create_brand(schemas.BrandCreate(name=name, code=code, logo=logo)) for name, code, logo in DEMO_BRANDS]
    hydra = brands[0].id

    store.create_financial(
        schemas.FinancialCreate(
            brand_id=hydra,
            date=now,
            revenue=124568,
            ad_spend=35000,
            cogs=25136,
            other_expenses=11000,
            profit=53432,
            roas=3.2,
        )
    )

    campaigns = [
        ("Summer Sale", "Meta", 2450, 2.8, 3.5, "Active"),
        ("Dog Training Tips", "TikTok", 1875, 3.2, 3.9, "Active"),
        ("Product Demo", "Meta", 1120, 1.3, 1.8, "Warning"),
        ("Customer Reviews", "TikTok", 980, 4.1, 4.2, "Active"),
    ]
    for name, platform, spend, ctr, roas, status in campaigns:
        store.create_ad_campaign(
            schemas.AdCampaignCreate(
                brand_id=hydra, name=name, platform=platform, spend=spend, ctr=ctr, roas=roas, status=status
            )
        )

    agents = [
        ("CX GPT", "CX", 98, 412, 15.23, 94),
        ("CMO GPT", "CMO", 85, 28, 12.50, 85),
        ("Cart Recovery GPT", "CartRecovery", 62, 183, 14.63, 62),
    ]
    for name, agent_type, success_rate, usage_count, cost, metric_value in agents:
        store.create_ai_agent(
            schemas.AiAgentCreate(
                brand_id=hydra,
                name=name,
                type=agent_type,
                success_rate=success_rate,
                usage_count=usage_count,
                cost=cost,
                metric_value=metric_value,
            )
        )

    store.create_product_market_fit(
        schemas.ProductMarketFitCreate(
            brand_id=hydra,
            date=now,
            pmf_score=75,
            return_rate=5.2,
            review_sentiment=82,
            repeat_purchase_rate=31,
            nps_score=42,
            objections=[
                schemas.Objection(name="Price too high", percentage=38),
                schemas.Objection(name="Durability concerns", percentage=22),
                schemas.Objection(name="Sizing issues", percentage=18),
                schemas.Objection(name="Shipping time", percentage=12),
            ],
        )
    )

    tasks = [
        (
            "Review ad performance for Meta campaigns",
            "Analyze the performance of all Meta ad campaigns and identify optimization opportunities",
            "ZB", "Medium", "Todo", 0, "Marketing", False,
        ),
        (
            "Analyze CX GPT customer feedback logs",
            "Review customer feedback logs from CX GPT and identify common issues",
            "AI", "High", "Todo", 1, "AI Ops", False,
        ),
        (
            "Update product description for harnesses",
            "Rewrite product descriptions for the dog harness product line",
            "TK", "Low", "Completed", -1, "Content", True,
        ),
        (
            "Review TikTok ad creative performance",
            "Analyze the performance of TikTok ad creatives and identify top performers",
            "JL", "Low", "Todo", 4, "Marketing", False,
        ),
    ]
    for title, description, assigned_to, priority, status, due_in_days, category, completed in tasks:
        store.create_task(
            schemas.TaskCreate(
                brand_id=hydra,
                title=title,
                description=description,
                assigned_to=assigned_to,
                priority=priority,
                status=status,
                due_date=now + dt.timedelta(days=due_in_days),
                category=category,
                completed=completed,
            )
        )

    meetings = [
        (
            "Weekly Marketing Review",
            "Review marketing performance from the previous week and plan for the next week",
            _at(now, 14), _at(now, 15), ["ZB", "JL", "TK", "AI", "PM"], False,
            "https://meet.google.com/abc-defg-hij",
        ),
        (
            "AI Performance Analysis",
            "Analyze the performance of AI agents and identify optimization opportunities",
            _at(now, 10, days=1), _at(now, 11, days=1), ["ZB", "AI"], False,
            "https://meet.google.com/jkl-mnop-qrs",
        ),
        (
            "Monthly Business Review",
            "Review business performance for the month and plan for the next month",
            _at(now, 13, days=4), _at(now, 15, days=4), ["ZB", "JL"], True,
            "https://meet.google.com/tuv-wxyz-123",
        ),
    ]
    for title, description, start, end, attendees, report_ready, link in meetings:
        store.create_meeting(
            schemas.MeetingCreate(
                brand_id=hydra,
                title=title,
                description=description,
                start_time=start,
                end_time=end,
                attendees=attendees,
                ai_report_ready=report_ready,
                meeting_link=link,
            )
        )

    counts = {
        "brands": len(brands),
        "ad_campaigns": len(campaigns),
        "ai_agents": len(agents),
        "tasks": len(tasks),
        "meetings": len(meetings),
    }
    logger.info("seed.completed", store=store.name, **counts)
    return counts


def reset_all_data(store: DashboardStore, reseed: bool = False) -> dict[str, int]:
    store.reset()
    if reseed:
        return seed_demo_data(store)
    return {}
