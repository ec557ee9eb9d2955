from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from loguru import logger

from services.admin_api import EndpointSpec, ListPage, ListQuery
from services.records import Record, field_value, record_id


DEFAULT_LOOKUP_LIMIT = 1000


class RemoteList(Protocol):
	def list(self, query: ListQuery) -> ListPage: ...


@dataclass(frozen=True)
class LookupSource:
	"""Reference collection whose records become select options (id -> label)."""
	endpoint: EndpointSpec
	label: Callable[[Record], str]
	limit: int = DEFAULT_LOOKUP_LIMIT


def load_lookup_options(endpoint: RemoteList, source: LookupSource) -> Dict[str, str]:
	"""Blocking: one list call, records without an id are skipped."""
	page = endpoint.list(ListQuery(page=1, page_size=max(1, int(source.limit))))
	options: Dict[str, str] = {}
	for record in page.items:
		rid = record_id(record)
		if not rid:
			continue
		options[rid] = str(source.label(record) or "").strip() or rid
	return options


def order_label(record: Record) -> str:
	number = field_value(record, "orderNumber") or record_id(record)
	customer = field_value(record, "user.fullName") or "Unknown user"
	return f"{number} - {customer}"


def user_label(record: Record) -> str:
	return str(field_value(record, "fullName") or field_value(record, "email") or "")


ORDERS_LOOKUP = LookupSource(
	endpoint=EndpointSpec(path="orders", items_key="orders", label="order"),
	label=order_label,
)

USERS_LOOKUP = LookupSource(
	endpoint=EndpointSpec(path="users", items_key="users", label="user", requires_auth=False),
	label=user_label,
)


class LookupLoader:
	"""
	Loads select options per LookupSource, once per loader (per page client).

	Errors (AdminApiError) propagate; nothing is cached for a failed source.
	"""

	def __init__(
		self,
		endpoint_factory: Callable[[EndpointSpec], RemoteList],
		*,
		io_bound: Optional[Callable[..., Awaitable[Any]]] = None,
	) -> None:
		self._factory = endpoint_factory
		self._io_bound = io_bound or asyncio.to_thread
		self._cache: Dict[str, Dict[str, str]] = {}
		self._log = logger.bind(component="LookupLoader")

	async def options(self, source: LookupSource) -> Dict[str, str]:
		key = source.endpoint.path
		cached = self._cache.get(key)
		if cached is not None:
			return dict(cached)

		endpoint = self._factory(source.endpoint)
		options = await self._io_bound(load_lookup_options, endpoint, source)
		self._cache[key] = dict(options)
		self._log.debug(f"[options] - loaded - source={key} count={len(options)}")
		return dict(options)

	def invalidate(self) -> None:
		self._cache.clear()
