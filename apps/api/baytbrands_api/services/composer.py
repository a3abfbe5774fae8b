from __future__ import annotations

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from functools import partial

from .. import schemas

CTR_THRESHOLD = 1.5
ROAS_THRESHOLD = 2.5
TASKS_SHOWN = 4
ATTENDEES_SHOWN = 3

STATUS_TONES = {
    "Active": "emerald",
    "Warning": "amber",
    "Paused": "blue",
    "Stopped": "red",
}

DEPARTMENTS = {
    "CX": "Customer Support",
    "CMO": "Marketing",
    "CartRecovery": "Sales",
}

METRIC_LABELS = {
    "resolutionRate": "Resolution Rate",
    "roasImprovement": "ROAS Improvement",
    "recoveryRate": "Recovery Rate",
}

PMF_EMPTY_MESSAGE = "No product-market fit data recorded for this brand yet."


def _quantize(value: float | None, places: str) -> Decimal:
    # Rounds the float's exact binary value: 1.45 is stored just below and gives 1.4.
    amount = Decimal(value or 0)
    if not amount.is_finite():
        amount = Decimal(0)
    return amount.quantize(Decimal(places), rounding=ROUND_HALF_UP)


def format_currency(amount: float | None, symbol: str = "$") -> str:
    rounded = int(_quantize(amount, "1"))
    sign = "-" if rounded < 0 else ""
    return f"{sign}{symbol}{abs(rounded):,}"


def format_money(amount: float | None, symbol: str = "$") -> str:
    rounded = _quantize(amount, "0.01")
    sign = "-" if rounded < 0 else ""
    return f"{sign}{symbol}{abs(rounded):,.2f}"


def format_percentage(value: float | None) -> str:
    return f"{_quantize(value, '0.1')}%"


def format_multiplier(value: float | None) -> str:
    return f"{_quantize(value, '0.1')}x"


def trend(change: float) -> schemas.TrendIndicator:
    # Zero counts as positive.
    is_positive = change >= 0
    magnitude = format_percentage(abs(change))
    return schemas.TrendIndicator(
        change=change,
        is_positive=is_positive,
        icon="arrow-up" if is_positive else "arrow-down",
        tone="positive" if is_positive else "negative",
        display=f"+{magnitude}" if is_positive else magnitude,
    )


def percent_change(current: float, previous: float | None) -> float:
    if not previous:
        return 0.0
    return round((current - previous) / abs(previous) * 100, 1)


def _align(value: dt.datetime, now: dt.datetime) -> tuple[dt.datetime, dt.datetime]:
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt.UTC)
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.UTC)
    return value.astimezone(now.tzinfo), now


def day_label(value: dt.datetime, now: dt.datetime) -> str:
    value, now = _align(value, now)
    days = (value.date() - now.date()).days
    if days == 0:
        return "Today"
    if days == 1:
        return "Tomorrow"
    return value.strftime("%A")


def clock_time(value: dt.datetime) -> str:
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {'AM' if value.hour < 12 else 'PM'}"


# --- P&L and KPIs --------------------------------------------------------


def _chronological(financials: list[schemas.Financial]) -> list[schemas.Financial]:
    return sorted(financials, key=lambda row: (row.date, row.id))


def latest_financial(financials: list[schemas.Financial]) -> schemas.Financial | None:
    ordered = _chronological(financials)
    return ordered[-1] if ordered else None


def expenses_of(financial: schemas.Financial) -> float:
    return financial.ad_spend + financial.cogs + financial.other_expenses


def pl_totals(financials: list[schemas.Financial]) -> schemas.PlTotals:
    latest = latest_financial(financials)
    if latest is None:
        return schemas.PlTotals(revenue=0.0, expenses=0.0, profit=0.0)
    return schemas.PlTotals(revenue=latest.revenue, expenses=expenses_of(latest), profit=latest.profit)


def compose_pl(financials: list[schemas.Financial], currency_symbol: str = "$") -> schemas.PlCard:
    totals = pl_totals(financials)
    series = [
        schemas.PlSeriesPoint(
            name=row.date.strftime("%b"),
            revenue=row.revenue,
            expenses=expenses_of(row),
            profit=row.profit,
        )
        for row in _chronological(financials)
    ]
    return schemas.PlCard(
        totals=totals,
        revenue_display=format_currency(totals.revenue, currency_symbol),
        expenses_display=format_currency(totals.expenses, currency_symbol),
        profit_display=format_currency(totals.profit, currency_symbol),
        series=series,
        has_data=bool(financials),
    )


def compose_kpis(financials: list[schemas.Financial], currency_symbol: str = "$") -> list[schemas.KpiCard]:
    ordered = _chronological(financials)
    latest = ordered[-1] if ordered else None
    previous = ordered[-2] if len(ordered) > 1 else None

    def card(key, title, attr, fmt) -> schemas.KpiCard:
        current = getattr(latest, attr) if latest else 0.0
        before = getattr(previous, attr) if previous else None
        return schemas.KpiCard(
            key=key,
            title=title,
            value=fmt(current),
            previous_value=fmt(before) if before is not None else None,
            trend=trend(percent_change(current, before)),
        )

    money = partial(format_currency, symbol=currency_symbol)
    return [
        card("revenue", "Total Revenue", "revenue", money),
        card("profit", "Net Profit", "profit", money),
        card("roas", "Average ROAS", "roas", format_multiplier),
    ]


# --- Ad campaigns --------------------------------------------------------


def health(value: float, threshold: float) -> str:
    return "needs_attention" if value < threshold else "healthy"


def toggled_status(status: str) -> str:
    return "Paused" if status == "Active" else "Active"


def compose_ad_performance(
    campaigns: list[schemas.AdCampaign], currency_symbol: str = "$"
) -> schemas.AdPerformanceCard:
    rows = [
        schemas.CampaignRow(
            id=campaign.id,
            name=campaign.name,
            platform=campaign.platform,
            spend=format_currency(campaign.spend, currency_symbol),
            ctr=format_percentage(campaign.ctr),
            roas=format_multiplier(campaign.roas),
            ctr_health=health(campaign.ctr, CTR_THRESHOLD),
            roas_health=health(campaign.roas, ROAS_THRESHOLD),
            status=campaign.status,
            status_tone=STATUS_TONES.get(campaign.status, "slate"),
            toggle_to=toggled_status(campaign.status),
        )
        for campaign in campaigns
    ]
    return schemas.AdPerformanceCard(rows=rows, caption=f"Showing {len(rows)} of {len(campaigns)} campaigns")


# --- AI agents -----------------------------------------------------------


def compose_agents(agents: list[schemas.AiAgent], currency_symbol: str = "$") -> schemas.AgentCard:
    rows = []
    for agent in agents:
        metric = agent.metric
        metric_name = metric.name if metric else schemas.AGENT_METRIC_NAMES.get(agent.type, "")
        metric_value = metric.value if metric else 0.0
        rows.append(
            schemas.AgentRow(
                id=agent.id,
                name=agent.name,
                type=agent.type,
                department=DEPARTMENTS.get(agent.type, ""),
                metric_label=METRIC_LABELS.get(metric_name, ""),
                metric_value=metric_value,
                metric_display=format_percentage(metric_value),
                success_rate=format_percentage(agent.success_rate),
                usage_count=agent.usage_count,
                cost=format_money(agent.cost, currency_symbol),
            )
        )
    total_cost = sum(agent.cost for agent in agents)
    total_usage = sum(agent.usage_count for agent in agents)
    average = total_cost / total_usage if total_usage else 0.0
    return schemas.AgentCard(
        agents=rows,
        total_cost=format_money(total_cost, currency_symbol),
        total_usage=total_usage,
        avg_cost_per_conversion=format_money(average, currency_symbol),
    )


# --- Product-market fit --------------------------------------------------


def objection_tone(percentage: float) -> str:
    if percentage > 30:
        return "red"
    if percentage > 15:
        return "amber"
    return "emerald"


def compose_pmf(pmf: schemas.ProductMarketFit | None) -> schemas.PmfCard:
    if pmf is None:
        return schemas.PmfCard(has_data=False, empty_message=PMF_EMPTY_MESSAGE)
    return schemas.PmfCard(
        has_data=True,
        pmf_score=pmf.pmf_score,
        return_rate=format_percentage(pmf.return_rate),
        review_sentiment=format_percentage(pmf.review_sentiment),
        repeat_purchase_rate=format_percentage(pmf.repeat_purchase_rate),
        nps_score=pmf.nps_score,
        objections=[
            schemas.ObjectionRow(
                name=objection.name,
                percentage=objection.percentage,
                display=format_percentage(objection.percentage),
                tone=objection_tone(objection.percentage),
            )
            for objection in pmf.objections
        ],
    )


# --- Tasks ---------------------------------------------------------------


def filter_tasks(tasks: list[schemas.Task], task_filter: str, operator_initials: str, ai_actor: str) -> list[schemas.Task]:
    if task_filter == "mine":
        return [task for task in tasks if task.assigned_to == operator_initials]
    if task_filter == "team":
        return [task for task in tasks if task.assigned_to not in (operator_initials, ai_actor)]
    if task_filter == "ai":
        return [task for task in tasks if task.assigned_to == ai_actor]
    return list(tasks)


def due_label(task: schemas.Task, now: dt.datetime) -> str:
    if task.completed:
        return "Completed"
    if task.due_date is None:
        return "No due date"
    return day_label(task.due_date, now)


def compose_tasks(
    tasks: list[schemas.Task],
    now: dt.datetime,
    task_filter: str = "all",
    operator_initials: str = "ZB",
    ai_actor: str = "AI",
) -> schemas.TaskPanel:
    if task_filter not in ("all", "mine", "team", "ai"):
        task_filter = "all"
    shown = filter_tasks(tasks, task_filter, operator_initials, ai_actor)[:TASKS_SHOWN]
    rows = [
        schemas.TaskRow(
            id=task.id,
            title=task.title,
            description=task.description or "",
            assigned_to=task.assigned_to or "",
            assignee_is_ai=task.assigned_to == ai_actor,
            category=task.category or "",
            priority_badge=None if task.completed else task.priority,
            due_label=due_label(task, now),
            completed=task.completed,
        )
        for task in shown
    ]
    return schemas.TaskPanel(active_filter=task_filter, rows=rows, caption=f"{len(rows)} of {len(tasks)} tasks shown")


# --- Meetings ------------------------------------------------------------


def compose_meetings(meetings: list[schemas.Meeting], now: dt.datetime) -> schemas.MeetingPanel:
    rows = []
    for meeting in sorted(meetings, key=lambda row: (row.start_time, row.id)):
        start, aligned_now = _align(meeting.start_time, now)
        end, _ = _align(meeting.end_time, now)
        label = day_label(start, aligned_now)
        is_today = label == "Today"
        extra = len(meeting.attendees) - ATTENDEES_SHOWN
        rows.append(
            schemas.MeetingRow(
                id=meeting.id,
                title=meeting.title,
                day_label=label,
                time_range=f"{clock_time(start)} - {clock_time(end)}",
                is_today=is_today,
                attendees=meeting.attendees[:ATTENDEES_SHOWN],
                extra_attendees=f"+{extra} others" if extra > 0 else None,
                join_link=meeting.meeting_link if is_today and meeting.meeting_link else None,
                ai_report_ready=meeting.ai_report_ready,
            )
        )
    return schemas.MeetingPanel(rows=rows)


# --- Dashboard -----------------------------------------------------------


def compose_dashboard(
    aggregate: schemas.BrandAggregate,
    now: dt.datetime,
    operator_initials: str = "ZB",
    ai_actor: str = "AI",
    task_filter: str = "all",
    currency_symbol: str = "$",
) -> schemas.DashboardView:
    """Builds the full dashboard view model for one aggregate. Never raises on missing data."""
    return schemas.DashboardView(
        brand_code=aggregate.brand_code,
        brand_name=aggregate.brand.name if aggregate.brand else aggregate.brand_code,
        is_loading=aggregate.is_loading,
        error=aggregate.error,
        kpis=compose_kpis(aggregate.financials, currency_symbol),
        pl=compose_pl(aggregate.financials, currency_symbol),
        ad_performance=compose_ad_performance(aggregate.ad_campaigns, currency_symbol),
        agents=compose_agents(aggregate.ai_agents, currency_symbol),
        pmf=compose_pmf(aggregate.product_market_fit),
        tasks=compose_tasks(aggregate.tasks, now, task_filter, operator_initials, ai_actor),
        meetings=compose_meetings(aggregate.meetings, now),
    )
