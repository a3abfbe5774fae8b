import asyncio
import threading
import time

from baytbrands_api.config import Settings
from baytbrands_api.services.aggregation import BrandAggregator
from baytbrands_api.services.seed import seed_demo_data
from baytbrands_api.services.session import DashboardSession
from baytbrands_api.services.store import MemoryStore

from conftest import NOW, fixed_clock


def _session(store, settings):
    return DashboardSession(BrandAggregator(store, settings.fetch_timeout_seconds), store, settings, clock=fixed_clock)


def test_select_brand_composes_view(seeded_store, settings):
    session = _session(seeded_store, settings)

    applied = asyncio.run(session.select_brand("HydraBark"))

    assert applied is True
    assert session.active_brand == "HydraBark"
    assert session.is_loading is False
    assert session.view.pl.totals.revenue == 124568
    assert session.aggregate.error is None


def test_unknown_brand_surfaces_not_found(seeded_store, settings):
    session = _session(seeded_store, settings)

    asyncio.run(session.select_brand("Nope"))

    assert session.view.error.code == "not_found"
    assert session.view.ad_performance.rows == []


def test_refetch_twice_yields_identical_views(seeded_store, settings):
    session = _session(seeded_store, settings)

    async def scenario():
        await session.select_brand("HydraBark")
        await session.refetch()
        first = session.view.model_dump_json()
        await session.refetch()
        return first, session.view.model_dump_json()

    first, second = asyncio.run(scenario())
    assert first == second


def test_finished_loads_leave_no_in_flight_entries(seeded_store, settings):
    session = _session(seeded_store, settings)

    async def scenario():
        for code in ("HydraBark", "FitFluence", "EcoVibe", "Nope"):
            await session.select_brand(code)

    asyncio.run(scenario())

    assert not session._in_flight
    assert session.is_loading is False


def test_refetch_without_brand_is_a_noop(seeded_store, settings):
    session = _session(seeded_store, settings)

    assert asyncio.run(session.refetch()) is False
    assert session.view is None


def test_task_filter_recomposes_without_refetch(seeded_store, settings):
    session = _session(seeded_store, settings)
    asyncio.run(session.select_brand("HydraBark"))
    aggregate = session.aggregate

    session.set_task_filter("team")

    assert session.aggregate is aggregate
    assert session.view.tasks.active_filter == "team"
    assert [row.assigned_to for row in session.view.tasks.rows] == ["TK", "JL"]


def test_set_task_completed_refetches(seeded_store, settings):
    session = _session(seeded_store, settings)
    before = seeded_store.get_task(2)
    assert (before.assigned_to, before.completed) == ("AI", False)

    async def scenario():
        await session.select_brand("HydraBark")
        return await session.set_task_completed(2, True)

    updated = asyncio.run(scenario())
    after = seeded_store.get_task(2)

    assert updated.completed is True
    assert after.completed is True
    assert after.model_dump(exclude={"completed", "updated_at"}) == before.model_dump(
        exclude={"completed", "updated_at"}
    )
    row = next(row for row in session.view.tasks.rows if row.id == 2)
    assert row.completed is True
    assert row.priority_badge is None
    assert session.notifications[-1].level == "success"


def test_toggle_campaign_twice_round_trips(seeded_store, settings):
    session = _session(seeded_store, settings)

    async def scenario():
        await session.select_brand("HydraBark")
        first = await session.toggle_campaign_status(1)
        status_after_first = session.view.ad_performance.rows[0].status
        second = await session.toggle_campaign_status(1)
        return first, status_after_first, second

    first, status_after_first, second = asyncio.run(scenario())

    assert first.status == "Paused"
    assert status_after_first == "Paused"
    assert second.status == "Active"
    assert session.view.ad_performance.rows[0].status == "Active"
    assert session.view.ad_performance.rows[0].toggle_to == "Paused"
    assert [note.level for note in session.notifications] == ["success", "success"]


def test_toggle_task_flips_completion(seeded_store, settings):
    session = _session(seeded_store, settings)

    async def scenario():
        await session.select_brand("HydraBark")
        await session.toggle_task(3)

    asyncio.run(scenario())

    assert seeded_store.get_task(3).completed is False


def test_missing_task_notifies_and_keeps_state(seeded_store, settings):
    session = _session(seeded_store, settings)

    async def scenario():
        await session.select_brand("HydraBark")
        before = session.view.model_dump_json()
        result = await session.toggle_task(999)
        return before, result

    before, result = asyncio.run(scenario())

    assert result is None
    assert session.view.model_dump_json() == before
    note = session.notifications[-1]
    assert note.level == "error"
    assert note.message == "Failed to update task: Task not found"


def test_invalid_campaign_status_notifies(seeded_store, settings):
    session = _session(seeded_store, settings)

    async def scenario():
        await session.select_brand("HydraBark")
        return await session.set_campaign_status(1, "Bogus")

    assert asyncio.run(scenario()) is None
    assert seeded_store.get_ad_campaign(1).status == "Active"
    assert session.notifications[-1].level == "error"
    assert session.notifications[-1].message.startswith("Failed to update campaign")


def test_slow_mutation_times_out_as_error_notification(seeded_store):
    class StallingStore(MemoryStore):
        def update_task(self, task_id, patch):
            time.sleep(0.3)
            return super().update_task(task_id, patch)

    store = StallingStore(clock=fixed_clock)
    seed_demo_data(store, now=NOW)
    session = _session(store, Settings(fetch_timeout_seconds=0.05))

    result = asyncio.run(session.set_task_completed(1, True))

    assert result is None
    assert session.notifications[-1].level == "error"
    assert "timed out" in session.notifications[-1].message


def test_stale_response_is_discarded_after_brand_switch(settings):
    entered = threading.Event()
    release = threading.Event()

    class GatedStore(MemoryStore):
        def list_financials(self, brand_id, period=None):
            if brand_id == self.get_brand_by_code("HydraBark").id:
                entered.set()
                release.wait(timeout=5)
            return super().list_financials(brand_id, period)

    store = GatedStore(clock=fixed_clock)
    seed_demo_data(store, now=NOW)
    session = _session(store, settings)

    async def scenario():
        slow = asyncio.create_task(session.select_brand("HydraBark"))
        await asyncio.to_thread(entered.wait, 5)
        loading_while_blocked = session.is_loading

        await session.select_brand("FitFluence")
        release.set()
        return loading_while_blocked, await slow

    loading_while_blocked, applied = asyncio.run(scenario())

    assert loading_while_blocked is True
    assert applied is False
    assert session.active_brand == "FitFluence"
    assert session.aggregate.brand_code == "FitFluence"
    assert session.view.brand_name == "FitFluence"
    assert session.is_loading is False
