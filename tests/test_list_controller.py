from __future__ import annotations

import asyncio
import unittest
from typing import Any

from services.admin_api import ListPage, ListQuery
from services.errors import RemoteError, Unauthorized
from services.list_controller import (
    ALL,
    FetchMode,
    ListController,
    QueryState,
    ResultSet,
    clamp_page,
    last_page,
)
from services.records import field_value


class FakeEndpoint:
    """In-memory collection; applies filters/search/paging like the backend does."""

    def __init__(self, records: list[dict[str, Any]] | None = None, search_field: str = "code") -> None:
        self.records = [dict(r) for r in (records or [])]
        self.search_field = search_field
        self.list_calls: list[ListQuery] = []
        self.mutations: list[tuple[str, Any]] = []
        self.error: Exception | None = None
        self._next_id = 100

    def list(self, query: ListQuery) -> ListPage:
        self.list_calls.append(query)
        if self.error is not None:
            raise self.error
        rows = [
            r for r in self.records
            if all(field_value(r, k) == v for k, v in query.filters.items())
            and query.search_text.lower() in str(field_value(r, self.search_field) or "").lower()
        ]
        start = (query.page - 1) * query.page_size
        return ListPage(items=rows[start:start + query.page_size], total_count=len(rows))

    def create(self, record: dict[str, Any]) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        self._next_id += 1
        created = dict(record, _id=str(self._next_id))
        self.records.append(created)
        self.mutations.append(("create", created))
        return created

    def update(self, record_id: str, record: dict[str, Any]) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        for r in self.records:
            if r.get("_id") == record_id:
                r.update(record)
                self.mutations.append(("update", record_id))
                return r
        raise RemoteError("not found", status=404)

    def delete(self, record_id: str) -> None:
        if self.error is not None:
            raise self.error
        self.records = [r for r in self.records if r.get("_id") != record_id]
        self.mutations.append(("delete", record_id))


async def inline_io(fn, *args):
    return fn(*args)


class GatedIo:
    """io_bound stand-in: each call waits until the test releases it."""

    def __init__(self) -> None:
        self.calls: list[asyncio.Future] = []

    async def __call__(self, fn, *args):
        gate = asyncio.get_running_loop().create_future()
        self.calls.append(gate)
        await gate
        return fn(*args)

    def release(self, index: int) -> None:
        self.calls[index].set_result(None)


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


COUPONS = [
    {"_id": "1", "code": "SPRING", "type": "percentage", "active": True},
    {"_id": "2", "code": "SUMMER", "type": "fixed", "active": True},
    {"_id": "3", "code": "AUTUMN", "type": "percentage", "active": False},
    {"_id": "4", "code": "WINTER", "type": "fixed", "active": False},
    {"_id": "5", "code": "SPRING2", "type": "percentage", "active": True},
]


def codes(result: ResultSet) -> list[str]:
    return [r["code"] for r in result.items]


class PagingHelpersTests(unittest.TestCase):
    def test_last_page_never_below_one(self) -> None:
        self.assertEqual(last_page(0, 10), 1)
        self.assertEqual(last_page(10, 10), 1)
        self.assertEqual(last_page(11, 10), 2)

    def test_clamp_page(self) -> None:
        self.assertEqual(clamp_page(0, 30, 10), 1)
        self.assertEqual(clamp_page(5, 30, 10), 3)
        self.assertEqual(clamp_page(2, 0, 10), 1)

    def test_fetch_mode_parse_falls_back(self) -> None:
        self.assertIs(FetchMode.parse("CLIENT_CACHED", FetchMode.SERVER_PAGED), FetchMode.CLIENT_CACHED)
        self.assertIs(FetchMode.parse("", FetchMode.CLIENT_CACHED), FetchMode.CLIENT_CACHED)
        self.assertIs(FetchMode.parse("bogus", FetchMode.SERVER_PAGED), FetchMode.SERVER_PAGED)

    def test_invalid_page_size_rejected(self) -> None:
        with self.assertRaises(ValueError):
            ListController(FakeEndpoint(), page_size=0)


class ClientCachedTests(unittest.IsolatedAsyncioTestCase):
    def make(self, records=COUPONS, **kwargs: Any) -> tuple[ListController, FakeEndpoint]:
        endpoint = FakeEndpoint(records)
        kwargs.setdefault("page_size", 2)
        kwargs.setdefault("io_bound", inline_io)
        ctl = ListController(
            endpoint,
            fetch_mode=FetchMode.CLIENT_CACHED,
            search_fields=("code",),
            search_delay_s=0.05,
            **kwargs,
        )
        return ctl, endpoint

    async def test_page_changes_never_fetch(self) -> None:
        ctl, endpoint = self.make()
        await ctl.refresh()
        self.assertEqual(len(endpoint.list_calls), 1)
        self.assertEqual(endpoint.list_calls[0].page_size, 1000)

        await ctl.set_page(2)
        await ctl.set_page_size(3)
        await ctl.set_page(2)
        await ctl.on_query_change({"page": 1, "page_size": 2})

        self.assertEqual(len(endpoint.list_calls), 1)
        self.assertEqual(ctl.current_result_set().page_size, 2)

    async def test_paging_slices_filtered_population(self) -> None:
        ctl, _ = self.make()
        await ctl.refresh()
        self.assertEqual(codes(ctl.current_result_set()), ["SPRING", "SUMMER"])
        await ctl.set_page(3)
        result = ctl.current_result_set()
        self.assertEqual(result.page, 3)
        self.assertEqual(codes(result), ["SPRING2"])
        self.assertEqual(result.page_count, 3)

    async def test_filters_combine_with_and(self) -> None:
        ctl, _ = self.make(page_size=10)
        await ctl.refresh()
        await ctl.set_filter("type", "percentage")
        await ctl.set_filter("active", True)

        result = ctl.current_result_set()
        expected = [r for r in COUPONS if r["type"] == "percentage" and r["active"] is True]
        self.assertEqual(result.total_count, len(expected))
        self.assertEqual(codes(result), [r["code"] for r in expected])

    async def test_false_filter_is_not_all(self) -> None:
        ctl, _ = self.make(page_size=10)
        await ctl.refresh()

        await ctl.set_filter("active", False)
        self.assertEqual(codes(ctl.current_result_set()), ["AUTUMN", "WINTER"])

        await ctl.set_filter("active", ALL)
        self.assertEqual(ctl.current_result_set().total_count, len(COUPONS))
        self.assertNotIn("active", ctl.query_state().filters)

    async def test_custom_predicate_used_for_filter(self) -> None:
        ctl, _ = self.make(page_size=10, filter_predicates={"long": lambda r, v: (len(r["code"]) > 6) == v})
        await ctl.refresh()
        await ctl.set_filter("long", True)
        self.assertEqual(codes(ctl.current_result_set()), ["SPRING2"])

    async def test_search_is_case_insensitive_substring(self) -> None:
        ctl, endpoint = self.make(page_size=10)
        await ctl.refresh()
        ctl.set_search_text("spr")
        await asyncio.sleep(0.15)
        self.assertEqual(codes(ctl.current_result_set()), ["SPRING", "SPRING2"])
        self.assertEqual(len(endpoint.list_calls), 1)

    async def test_filter_scenario_clamps_page(self) -> None:
        records = [{"code": "X1", "active": True}, {"code": "X2", "active": False}]
        ctl, _ = self.make(records=records, page_size=1)
        await ctl.refresh()

        await ctl.set_filter("active", True)
        result = ctl.current_result_set()
        self.assertEqual(result.total_count, 1)
        self.assertEqual(codes(result), ["X1"])

        await ctl.set_page(2)
        self.assertEqual(ctl.current_result_set().page, 1)
        self.assertEqual(ctl.query_state().page, 1)
        self.assertEqual(codes(ctl.current_result_set()), ["X1"])

    async def test_invalidate_with_unchanged_data_is_idempotent(self) -> None:
        ctl, endpoint = self.make()
        await ctl.refresh()
        await ctl.set_filter("type", "fixed")
        before = ctl.current_result_set()

        await ctl.invalidate()
        after = ctl.current_result_set()

        self.assertEqual(len(endpoint.list_calls), 2)
        self.assertEqual(before.items, after.items)
        self.assertEqual(before.total_count, after.total_count)

    async def test_three_quick_searches_recompute_once(self) -> None:
        ctl, _ = self.make(page_size=10)
        await ctl.refresh()
        published: list[ResultSet] = []
        ctl.subscribe(published.append)

        ctl.set_search_text("a")
        ctl.set_search_text("ab")
        ctl.set_search_text("aut")
        await asyncio.sleep(0.15)

        self.assertEqual(len(published), 1)
        self.assertEqual(codes(published[0]), ["AUTUMN"])

    async def test_clear_filters_resets_search_and_filters(self) -> None:
        ctl, _ = self.make(page_size=10)
        await ctl.refresh()
        await ctl.set_filter("type", "fixed")
        ctl.set_search_text("sum")
        await ctl.clear_filters()
        await asyncio.sleep(0.1)

        self.assertEqual(ctl.query_state(), QueryState(page_size=10))
        self.assertEqual(ctl.current_result_set().total_count, len(COUPONS))

    async def test_failed_refetch_keeps_previous_result(self) -> None:
        errors: list[str] = []
        ctl, endpoint = self.make(on_error=errors.append)
        await ctl.refresh()
        before = ctl.current_result_set()

        endpoint.error = RemoteError("Backend down", status=500)
        await ctl.invalidate()

        self.assertEqual(errors, ["Backend down"])
        self.assertIs(ctl.current_result_set(), before)
        self.assertIsInstance(ctl.last_error, RemoteError)

        # the stale cache is reloaded on the next recompute
        endpoint.error = None
        await ctl.set_page(2)
        self.assertEqual(len(endpoint.list_calls), 3)
        self.assertIsNone(ctl.last_error)


    async def test_late_bulk_load_is_dropped(self) -> None:
        io = GatedIo()
        ctl, endpoint = self.make(page_size=10, io_bound=io)

        task_a = asyncio.create_task(ctl.refresh())
        await settle()
        task_b = asyncio.create_task(ctl.invalidate())
        await settle()
        self.assertEqual(len(io.calls), 2)

        io.release(1)
        await task_b
        self.assertEqual(ctl.current_result_set().total_count, len(COUPONS))

        # the older load reads the backend after a new coupon appeared
        endpoint.records.append({"_id": "6", "code": "LATE", "type": "fixed", "active": True})
        io.release(0)
        await task_a

        self.assertEqual(ctl.current_result_set().total_count, len(COUPONS))
        self.assertNotIn("LATE", codes(ctl.current_result_set()))
        self.assertFalse(ctl.loading_state())

        # the cache kept the newer load, so paging does not refetch
        await ctl.set_filter("type", "fixed")
        self.assertEqual(codes(ctl.current_result_set()), ["SUMMER", "WINTER"])
        self.assertEqual(len(endpoint.list_calls), 2)


class ServerPagedTests(unittest.IsolatedAsyncioTestCase):
    def make(self, records=COUPONS, io=inline_io, **kwargs: Any) -> tuple[ListController, FakeEndpoint]:
        endpoint = FakeEndpoint(records)
        kwargs.setdefault("page_size", 2)
        ctl = ListController(
            endpoint,
            fetch_mode=FetchMode.SERVER_PAGED,
            io_bound=io,
            search_delay_s=0.05,
            **kwargs,
        )
        return ctl, endpoint

    async def test_every_query_change_fetches_once(self) -> None:
        ctl, endpoint = self.make()
        await ctl.refresh()
        await ctl.set_page(2)
        await ctl.set_filter("type", "fixed")

        self.assertEqual(len(endpoint.list_calls), 3)
        last = endpoint.list_calls[-1]
        self.assertEqual(last.page, 1)
        self.assertEqual(dict(last.filters), {"type": "fixed"})
        self.assertEqual(codes(ctl.current_result_set()), ["SUMMER", "WINTER"])

    async def test_three_quick_searches_issue_one_request(self) -> None:
        ctl, endpoint = self.make()
        ctl.set_search_text("s")
        ctl.set_search_text("sp")
        ctl.set_search_text("spr")
        await asyncio.sleep(0.15)

        self.assertEqual(len(endpoint.list_calls), 1)
        self.assertEqual(endpoint.list_calls[0].search_text, "spr")
        self.assertEqual(endpoint.list_calls[0].page, 1)

    async def test_query_change_cancels_pending_search(self) -> None:
        ctl, endpoint = self.make()
        ctl.set_search_text("s")
        await ctl.set_filter("type", "fixed")
        await asyncio.sleep(0.15)

        self.assertEqual(len(endpoint.list_calls), 1)
        self.assertEqual(endpoint.list_calls[0].search_text, "s")
        self.assertEqual(dict(endpoint.list_calls[0].filters), {"type": "fixed"})

        ctl.set_search_text("su")
        await ctl.set_page(1)
        ctl.set_search_text("sum")
        await ctl.set_page_size(5)
        await asyncio.sleep(0.15)

        self.assertEqual(len(endpoint.list_calls), 3)
        self.assertEqual(endpoint.list_calls[-1].search_text, "sum")
        self.assertEqual(codes(ctl.current_result_set()), ["SUMMER"])

    async def test_late_response_of_older_request_is_dropped(self) -> None:
        io = GatedIo()
        ctl, endpoint = self.make(io=io, page_size=10)

        task_a = asyncio.create_task(ctl.set_filter("type", "percentage"))
        await settle()
        task_b = asyncio.create_task(ctl.set_filter("type", "fixed"))
        await settle()
        self.assertEqual(len(io.calls), 2)

        io.release(1)
        await task_b
        self.assertEqual(codes(ctl.current_result_set()), ["SUMMER", "WINTER"])

        io.release(0)
        await task_a
        self.assertEqual(codes(ctl.current_result_set()), ["SUMMER", "WINTER"])
        self.assertEqual(len(endpoint.list_calls), 2)

    async def test_stale_failure_is_not_surfaced(self) -> None:
        io = GatedIo()
        errors: list[str] = []
        ctl, endpoint = self.make(io=io, on_error=errors.append)

        task_a = asyncio.create_task(ctl.set_page(1))
        await settle()
        task_b = asyncio.create_task(ctl.set_filter("type", "fixed"))
        await settle()

        io.release(1)
        await task_b
        endpoint.error = RemoteError("late failure")
        io.release(0)
        await task_a

        self.assertEqual(errors, [])
        self.assertEqual(codes(ctl.current_result_set()), ["SUMMER", "WINTER"])

    async def test_loading_tracks_latest_fetch(self) -> None:
        io = GatedIo()
        ctl, _ = self.make(io=io)
        self.assertFalse(ctl.loading_state())

        task_a = asyncio.create_task(ctl.refresh())
        await settle()
        self.assertTrue(ctl.loading_state())
        task_b = asyncio.create_task(ctl.set_page(2))
        await settle()

        io.release(0)
        await task_a
        self.assertTrue(ctl.loading_state())

        io.release(1)
        await task_b
        self.assertFalse(ctl.loading_state())

    async def test_page_past_end_is_clamped_and_refetched(self) -> None:
        records = [{"code": "X1", "active": True}, {"code": "X2", "active": False}]
        ctl, endpoint = self.make(records=records, page_size=1)

        await ctl.set_page(5)

        self.assertEqual([q.page for q in endpoint.list_calls], [5, 2])
        result = ctl.current_result_set()
        self.assertEqual(result.page, 2)
        self.assertEqual(codes(result), ["X2"])

    async def test_filter_scenario_clamps_page(self) -> None:
        records = [{"code": "X1", "active": True}, {"code": "X2", "active": False}]
        ctl, _ = self.make(records=records, page_size=1)
        await ctl.refresh()

        await ctl.set_filter("active", True)
        self.assertEqual(ctl.current_result_set().total_count, 1)
        self.assertEqual(codes(ctl.current_result_set()), ["X1"])

        await ctl.set_page(2)
        self.assertEqual(ctl.query_state().page, 1)
        self.assertEqual(codes(ctl.current_result_set()), ["X1"])

    async def test_remote_error_keeps_result_and_notifies(self) -> None:
        errors: list[str] = []
        ctl, endpoint = self.make(on_error=errors.append)
        await ctl.refresh()
        before = ctl.current_result_set()

        endpoint.error = RemoteError("Failed to load coupon list", status=500)
        await ctl.set_page(2)

        self.assertIs(ctl.current_result_set(), before)
        self.assertEqual(errors, ["Failed to load coupon list"])
        self.assertFalse(ctl.loading_state())

    async def test_unauthorized_goes_to_its_own_callback(self) -> None:
        errors: list[str] = []
        denied: list[Unauthorized] = []
        ctl, endpoint = self.make(on_error=errors.append, on_unauthorized=denied.append)
        endpoint.error = Unauthorized("Session expired", status=401)

        await ctl.refresh()

        self.assertEqual(len(denied), 1)
        self.assertEqual(errors, [])

    async def test_on_query_change_applies_partial(self) -> None:
        ctl, endpoint = self.make()
        await ctl.refresh()

        await ctl.on_query_change({"page": 2, "page_size": 2})
        self.assertEqual(ctl.query_state().page, 2)
        self.assertEqual(len(endpoint.list_calls), 2)

        await ctl.on_query_change({"filters": {"active": False}, "page": 3})
        self.assertEqual(ctl.query_state().page, 1)
        self.assertEqual(codes(ctl.current_result_set()), ["AUTUMN", "WINTER"])

        await ctl.on_query_change({"search_text": "win"})
        self.assertEqual(len(endpoint.list_calls), 3)
        await asyncio.sleep(0.15)
        self.assertEqual(len(endpoint.list_calls), 4)
        self.assertEqual(codes(ctl.current_result_set()), ["WINTER"])

    async def test_subscribe_and_unsubscribe(self) -> None:
        ctl, _ = self.make()
        seen: list[ResultSet] = []

        def broken(_: ResultSet) -> None:
            raise RuntimeError("listener bug")

        ctl.subscribe(broken)
        unsubscribe = ctl.subscribe(seen.append)
        await ctl.refresh()
        self.assertEqual(len(seen), 1)

        unsubscribe()
        unsubscribe()
        await ctl.set_page(2)
        self.assertEqual(len(seen), 1)

    async def test_mutations_invalidate(self) -> None:
        ctl, endpoint = self.make(page_size=10)
        await ctl.refresh()

        self.assertTrue(await ctl.create_record({"code": "NEW", "type": "fixed", "active": True}))
        self.assertIn("NEW", codes(ctl.current_result_set()))

        self.assertTrue(await ctl.update_record("1", {"code": "SPRING_X"}))
        self.assertIn("SPRING_X", codes(ctl.current_result_set()))

        self.assertTrue(await ctl.delete_record("2"))
        self.assertNotIn("SUMMER", codes(ctl.current_result_set()))
        self.assertEqual(len(endpoint.list_calls), 4)

    async def test_failed_mutation_surfaces_and_skips_refetch(self) -> None:
        errors: list[str] = []
        ctl, endpoint = self.make(on_error=errors.append)
        await ctl.refresh()
        endpoint.error = RemoteError("Failed to delete coupon", status=500)

        self.assertFalse(await ctl.delete_record("1"))
        self.assertEqual(errors, ["Failed to delete coupon"])
        self.assertEqual(len(endpoint.list_calls), 1)

    async def test_close_stops_fetching(self) -> None:
        ctl, endpoint = self.make()
        ctl.set_search_text("spr")
        ctl.close()
        await asyncio.sleep(0.15)
        await ctl.refresh()

        self.assertEqual(endpoint.list_calls, [])
        self.assertFalse(await ctl.create_record({"code": "X"}))


if __name__ == "__main__":
    unittest.main()
