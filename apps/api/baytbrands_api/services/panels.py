from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .. import schemas


@dataclass(frozen=True)
class PanelSpec:
    title: str
    selector: Callable[[schemas.DashboardView], Any]
    is_empty: Callable[[schemas.DashboardView], bool]
    empty_message: str | None = None


PANELS: dict[str, PanelSpec] = {
    "dashboard": PanelSpec(
        title="Dashboard",
        selector=lambda view: view,
        is_empty=lambda view: False,
    ),
    "pl-tracker": PanelSpec(
        title="P&L Tracker",
        selector=lambda view: view.pl,
        is_empty=lambda view: not view.pl.has_data,
        empty_message="No financial records for this brand yet.",
    ),
    "ai-agents": PanelSpec(
        title="AI Agents",
        selector=lambda view: view.agents,
        is_empty=lambda view: not view.agents.agents,
        empty_message="No AI agents are configured for this brand.",
    ),
    "ad-optimizer": PanelSpec(
        title="Ad Optimizer",
        selector=lambda view: view.ad_performance,
        is_empty=lambda view: not view.ad_performance.rows,
        empty_message="No ad campaigns running for this brand.",
    ),
    "pmf-tracker": PanelSpec(
        title="PMF Tracker",
        selector=lambda view: view.pmf,
        is_empty=lambda view: not view.pmf.has_data,
        empty_message="No product-market fit data recorded for this brand yet.",
    ),
    "project-tracker": PanelSpec(
        title="Project Tracker",
        selector=lambda view: view.tasks,
        is_empty=lambda view: not view.tasks.rows,
        empty_message="No tasks match this filter.",
    ),
    "meeting-panel": PanelSpec(
        title="Meeting Panel",
        selector=lambda view: view.meetings,
        is_empty=lambda view: not view.meetings.rows,
        empty_message="No upcoming meetings.",
    ),
    "kpi-scorecard": PanelSpec(
        title="KPI Scorecard",
        selector=lambda view: view.kpis,
        is_empty=lambda view: not view.pl.has_data,
        empty_message="KPIs appear once financial records exist.",
    ),
}


def build_panel(route_key: str, view: schemas.DashboardView) -> schemas.PanelPayload | None:
    """Returns None for an unknown route key."""
    spec = PANELS.get(route_key)
    if spec is None:
        return None
    empty = spec.is_empty(view)
    return schemas.PanelPayload(
        route_key=route_key,
        title=spec.title,
        brand_code=view.brand_code,
        is_empty=empty,
        empty_message=spec.empty_message if empty else None,
        data=spec.selector(view),
    )
