from __future__ import annotations

import unittest
from typing import Any

from services.admin_api import EndpointSpec, ListPage, ListQuery
from services.errors import RemoteError
from services.lookups import (
    ORDERS_LOOKUP,
    USERS_LOOKUP,
    LookupLoader,
    load_lookup_options,
    order_label,
    user_label,
)


class FakeList:
    def __init__(self, items: list[dict[str, Any]]) -> None:
        self.items = items
        self.calls: list[ListQuery] = []
        self.error: Exception | None = None

    def list(self, query: ListQuery) -> ListPage:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        return ListPage(items=list(self.items), total_count=len(self.items))


async def inline_io(fn, *args):
    return fn(*args)


ORDERS = [
    {"_id": "o1", "orderNumber": "ORD-001", "user": {"fullName": "Nguyen Van A"}},
    {"_id": "o2", "orderNumber": "ORD-002"},
    {"orderNumber": "ORD-NO-ID"},
]


class LookupOptionsTests(unittest.TestCase):
    def test_options_map_id_to_label(self) -> None:
        endpoint = FakeList(ORDERS)
        options = load_lookup_options(endpoint, ORDERS_LOOKUP)

        self.assertEqual(options, {"o1": "ORD-001 - Nguyen Van A", "o2": "ORD-002 - Unknown user"})
        self.assertEqual(endpoint.calls[0].page, 1)
        self.assertEqual(endpoint.calls[0].page_size, ORDERS_LOOKUP.limit)

    def test_user_label_falls_back_to_email_then_id(self) -> None:
        endpoint = FakeList([
            {"_id": "u1", "fullName": "Tran B"},
            {"_id": "u2", "email": "c@shop.vn"},
            {"_id": "u3"},
        ])
        options = load_lookup_options(endpoint, USERS_LOOKUP)
        self.assertEqual(options, {"u1": "Tran B", "u2": "c@shop.vn", "u3": "u3"})
        self.assertEqual(user_label({"fullName": "", "email": "x@y.z"}), "x@y.z")
        self.assertEqual(order_label({"_id": "o9"}), "o9 - Unknown user")


class LookupLoaderTests(unittest.IsolatedAsyncioTestCase):
    async def test_each_source_is_fetched_once(self) -> None:
        endpoints: dict[str, FakeList] = {
            "orders": FakeList(ORDERS),
            "users": FakeList([{"_id": "u1", "fullName": "Tran B"}]),
        }
        built: list[EndpointSpec] = []

        def factory(spec: EndpointSpec) -> FakeList:
            built.append(spec)
            return endpoints[spec.path]

        loader = LookupLoader(factory, io_bound=inline_io)

        first = await loader.options(ORDERS_LOOKUP)
        first["o1"] = "changed"
        second = await loader.options(ORDERS_LOOKUP)
        users = await loader.options(USERS_LOOKUP)

        self.assertEqual(second["o1"], "ORD-001 - Nguyen Van A")
        self.assertEqual(users, {"u1": "Tran B"})
        self.assertEqual(len(endpoints["orders"].calls), 1)
        self.assertEqual([s.path for s in built], ["orders", "users"])

        loader.invalidate()
        await loader.options(ORDERS_LOOKUP)
        self.assertEqual(len(endpoints["orders"].calls), 2)

    async def test_failure_propagates_and_is_not_cached(self) -> None:
        endpoint = FakeList(ORDERS)
        endpoint.error = RemoteError("Failed to load order list", status=500)
        loader = LookupLoader(lambda spec: endpoint, io_bound=inline_io)

        with self.assertRaises(RemoteError):
            await loader.options(ORDERS_LOOKUP)

        endpoint.error = None
        self.assertIn("o1", await loader.options(ORDERS_LOOKUP))
        self.assertEqual(len(endpoint.calls), 2)


if __name__ == "__main__":
    unittest.main()
