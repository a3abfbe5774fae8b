import datetime as dt

import pytest

from baytbrands_api import schemas
from baytbrands_api.errors import ErrorInfo
from baytbrands_api.services import composer

from conftest import NOW


def _financial(id, date, revenue, profit, roas=3.0, ad_spend=0.0, cogs=0.0, other_expenses=0.0):
    return schemas.Financial(
        id=id,
        brand_id=1,
        date=date,
        revenue=revenue,
        ad_spend=ad_spend,
        cogs=cogs,
        other_expenses=other_expenses,
        profit=profit,
        roas=roas,
    )


def _aggregate(store, code="HydraBark"):
    brand = store.get_brand_by_code(code)
    return schemas.BrandAggregate(
        brand_code=code,
        brand_id=brand.id,
        brand=brand,
        financials=store.list_financials(brand.id),
        ad_campaigns=store.list_ad_campaigns(brand.id),
        ai_agents=store.list_ai_agents(brand.id),
        product_market_fit=store.get_product_market_fit(brand.id),
        tasks=store.list_tasks(brand.id),
        meetings=store.list_meetings(brand.id),
    )


@pytest.mark.parametrize(
    ("amount", "expected"),
    [
        (124568, "$124,568"),
        (1234.5, "$1,235"),
        (-1234.5, "-$1,235"),
        (0.4, "$0"),
        (None, "$0"),
    ],
)
def test_format_currency(amount, expected):
    assert composer.format_currency(amount) == expected


def test_format_percentage_and_multiplier():
    assert composer.format_percentage(5.2) == "5.2%"
    assert composer.format_percentage(94) == "94.0%"
    assert composer.format_percentage(0.05) == "0.1%"
    assert composer.format_percentage(None) == "0.0%"
    assert composer.format_multiplier(3.2) == "3.2x"
    assert composer.format_money(12.5) == "$12.50"


def test_rounding_follows_the_stored_float():
    assert composer.format_percentage(1.45) == "1.4%"
    assert composer.format_percentage(1.55) == "1.6%"
    assert composer.format_multiplier(2.25) == "2.3x"


def test_zero_change_is_positive():
    indicator = composer.trend(0)

    assert indicator.is_positive is True
    assert indicator.icon == "arrow-up"
    assert indicator.tone == "positive"
    assert indicator.display == "+0.0%"


def test_negative_change_shows_magnitude():
    indicator = composer.trend(-2.1)

    assert indicator.is_positive is False
    assert indicator.icon == "arrow-down"
    assert indicator.tone == "negative"
    assert indicator.display == "2.1%"
    assert composer.trend(12.5).display == "+12.5%"


def test_percent_change():
    assert composer.percent_change(110, 100) == 10.0
    assert composer.percent_change(90, 100) == -10.0
    assert composer.percent_change(5, 0) == 0.0
    assert composer.percent_change(5, None) == 0.0


@pytest.mark.parametrize(
    ("value", "threshold", "expected"),
    [
        (1.5, composer.CTR_THRESHOLD, "healthy"),
        (1.49, composer.CTR_THRESHOLD, "needs_attention"),
        (2.5, composer.ROAS_THRESHOLD, "healthy"),
        (2.49, composer.ROAS_THRESHOLD, "needs_attention"),
    ],
)
def test_campaign_health_thresholds_are_strict(value, threshold, expected):
    assert composer.health(value, threshold) == expected


def test_hydrabark_pl_totals(seeded_store):
    pl = composer.compose_pl(_aggregate(seeded_store).financials)

    assert pl.totals.model_dump() == {"revenue": 124568, "expenses": 71136, "profit": 53432}
    assert pl.revenue_display == "$124,568"
    assert pl.expenses_display == "$71,136"
    assert pl.profit_display == "$53,432"
    assert pl.has_data is True
    assert [point.name for point in pl.series] == ["Oct"]


def test_pl_falls_back_to_zeros():
    pl = composer.compose_pl([])

    assert pl.totals.model_dump() == {"revenue": 0, "expenses": 0, "profit": 0}
    assert pl.revenue_display == "$0"
    assert pl.series == []
    assert pl.has_data is False


def test_latest_financial_drives_totals_and_kpis():
    september = _financial(1, dt.datetime(2026, 9, 30, tzinfo=dt.UTC), revenue=100000, profit=40000, roas=3.0)
    october = _financial(2, dt.datetime(2026, 10, 18, tzinfo=dt.UTC), revenue=110000, profit=38000, roas=3.3)

    # Input order must not matter.
    kpis = composer.compose_kpis([october, september])
    pl = composer.compose_pl([october, september])

    assert pl.totals.revenue == 110000
    assert [point.name for point in pl.series] == ["Sep", "Oct"]
    revenue, profit, roas = kpis
    assert (revenue.title, profit.title, roas.title) == ("Total Revenue", "Net Profit", "Average ROAS")
    assert revenue.value == "$110,000"
    assert revenue.previous_value == "$100,000"
    assert revenue.trend.display == "+10.0%"
    assert profit.trend.is_positive is False
    assert profit.trend.display == "5.0%"
    assert roas.value == "3.3x"


def test_kpis_without_history_show_neutral_trend(seeded_store):
    kpis = composer.compose_kpis(_aggregate(seeded_store).financials)

    assert [card.value for card in kpis] == ["$124,568", "$53,432", "3.2x"]
    assert all(card.previous_value is None for card in kpis)
    assert all(card.trend.is_positive for card in kpis)


def test_campaign_rows(seeded_store):
    card = composer.compose_ad_performance(_aggregate(seeded_store).ad_campaigns)
    summer, _, demo, _ = card.rows

    assert card.caption == "Showing 4 of 4 campaigns"
    assert (summer.spend, summer.ctr, summer.roas) == ("$2,450", "2.8%", "3.5x")
    assert summer.status_tone == "emerald"
    assert summer.toggle_to == "Paused"
    assert demo.ctr_health == "needs_attention"
    assert demo.roas_health == "needs_attention"
    assert demo.status_tone == "amber"
    assert demo.toggle_to == "Active"


def test_agent_card(seeded_store):
    card = composer.compose_agents(_aggregate(seeded_store).ai_agents)
    cx, cmo, cart = card.agents

    assert (cx.department, cx.metric_label, cx.metric_display) == ("Customer Support", "Resolution Rate", "94.0%")
    assert (cmo.department, cmo.metric_label) == ("Marketing", "ROAS Improvement")
    assert (cart.department, cart.metric_label) == ("Sales", "Recovery Rate")
    assert cx.cost == "$15.23"
    assert card.total_cost == "$42.36"
    assert card.total_usage == 623
    assert card.avg_cost_per_conversion == "$0.07"


def test_agent_without_metric_or_usage_renders_zeros():
    agent = schemas.AiAgent(
        id=1,
        brand_id=1,
        name="CMO GPT",
        type="CMO",
        success_rate=0,
        usage_count=0,
        cost=3.0,
        created_at=NOW,
        updated_at=NOW,
    )

    card = composer.compose_agents([agent])

    assert card.agents[0].metric_value == 0
    assert card.agents[0].metric_display == "0.0%"
    assert card.agents[0].metric_label == "ROAS Improvement"
    assert card.avg_cost_per_conversion == "$0.00"


def test_pmf_card(seeded_store):
    card = composer.compose_pmf(_aggregate(seeded_store).product_market_fit)

    assert card.has_data is True
    assert card.return_rate == "5.2%"
    assert card.nps_score == 42
    assert [(row.name, row.tone) for row in card.objections] == [
        ("Price too high", "red"),
        ("Durability concerns", "amber"),
        ("Sizing issues", "amber"),
        ("Shipping time", "emerald"),
    ]


def test_missing_pmf_is_an_empty_state():
    card = composer.compose_pmf(None)

    assert card.has_data is False
    assert card.empty_message
    assert card.return_rate == "0.0%"
    assert card.objections == []


@pytest.mark.parametrize(
    ("task_filter", "assignees", "caption"),
    [
        ("all", ["ZB", "AI", "TK", "JL"], "4 of 4 tasks shown"),
        ("mine", ["ZB"], "1 of 4 tasks shown"),
        ("team", ["TK", "JL"], "2 of 4 tasks shown"),
        ("ai", ["AI"], "1 of 4 tasks shown"),
    ],
)
def test_task_filters(seeded_store, task_filter, assignees, caption):
    panel = composer.compose_tasks(_aggregate(seeded_store).tasks, NOW, task_filter, "ZB", "AI")

    assert panel.active_filter == task_filter
    assert [row.assigned_to for row in panel.rows] == assignees
    assert panel.caption == caption


def test_task_panel_caps_rows_and_badges(seeded_store, now):
    store = seeded_store
    hydra = store.get_brand_by_code("HydraBark")
    store.create_task(schemas.TaskCreate(brand_id=hydra.id, title="Fifth", assigned_to="ZB"))

    panel = composer.compose_tasks(store.list_tasks(hydra.id), now)
    rows = {row.title: row for row in panel.rows}

    assert len(panel.rows) == 4
    assert panel.caption == "4 of 5 tasks shown"
    assert rows["Review ad performance for Meta campaigns"].priority_badge == "Medium"
    assert rows["Review ad performance for Meta campaigns"].due_label == "Today"
    assert rows["Analyze CX GPT customer feedback logs"].due_label == "Tomorrow"
    assert rows["Analyze CX GPT customer feedback logs"].assignee_is_ai is True
    assert rows["Update product description for harnesses"].priority_badge is None
    assert rows["Update product description for harnesses"].due_label == "Completed"


def test_unknown_task_filter_falls_back_to_all(seeded_store):
    panel = composer.compose_tasks(_aggregate(seeded_store).tasks, NOW, "bogus")

    assert panel.active_filter == "all"
    assert len(panel.rows) == 4


def test_day_labels():
    assert composer.day_label(NOW.replace(hour=23, minute=59), NOW) == "Today"
    assert composer.day_label(NOW + dt.timedelta(days=1), NOW) == "Tomorrow"
    assert composer.day_label(NOW + dt.timedelta(days=2), NOW) == "Wednesday"
    assert composer.day_label(NOW - dt.timedelta(days=1), NOW) == "Sunday"


def test_meeting_panel(seeded_store):
    panel = composer.compose_meetings(_aggregate(seeded_store).meetings, NOW)
    weekly, ai_review, monthly = panel.rows

    assert (weekly.day_label, weekly.time_range) == ("Today", "2:00 PM - 3:00 PM")
    assert weekly.is_today is True
    assert weekly.attendees == ["ZB", "JL", "TK"]
    assert weekly.extra_attendees == "+2 others"
    assert weekly.join_link == "https://meet.google.com/abc-defg-hij"

    assert (ai_review.day_label, ai_review.time_range) == ("Tomorrow", "10:00 AM - 11:00 AM")
    assert ai_review.extra_attendees is None
    assert ai_review.join_link is None

    assert monthly.day_label == "Friday"
    assert monthly.ai_report_ready is True


def test_compose_dashboard_is_deterministic(seeded_store):
    aggregate = _aggregate(seeded_store)

    first = composer.compose_dashboard(aggregate, NOW, task_filter="mine")
    second = composer.compose_dashboard(aggregate, NOW, task_filter="mine")

    assert first == second
    assert first.brand_name == "HydraBark"
    assert first.tasks.active_filter == "mine"


def test_compose_dashboard_for_error_aggregate():
    aggregate = schemas.BrandAggregate(
        brand_code="Gone",
        error=ErrorInfo(code="not_found", message="Brand not found", status_code=404),
    )

    view = composer.compose_dashboard(aggregate, NOW)

    assert view.brand_name == "Gone"
    assert view.error.code == "not_found"
    assert view.pl.has_data is False
    assert view.pmf.has_data is False
    assert view.tasks.caption == "0 of 0 tasks shown"


def test_non_finite_amounts_render_as_zero():
    broken = _financial(1, NOW, revenue=float("inf"), profit=float("nan"), roas=float("inf"))

    pl = composer.compose_pl([broken])
    kpis = composer.compose_kpis([broken])

    assert pl.revenue_display == "$0"
    assert pl.profit_display == "$0"
    assert [card.value for card in kpis] == ["$0", "$0", "0.0x"]
    assert composer.format_percentage(float("-inf")) == "0.0%"
