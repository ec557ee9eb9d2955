from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from loguru import logger

from services.admin_api import ListPage, ListQuery
from services.debounce import Debouncer
from services.errors import AdminApiError, StaleResponse, Unauthorized
from services.records import Record, field_value


DEFAULT_PAGE_SIZE = 10
DEFAULT_SEARCH_DELAY_S = 0.3
DEFAULT_BULK_FETCH_LIMIT = 1000


# ------------------------------------------------------------------ Models

class FetchMode(str, Enum):
	SERVER_PAGED = "server_paged"
	CLIENT_CACHED = "client_cached"

	@classmethod
	def parse(cls, raw: Any, default: "FetchMode") -> "FetchMode":
		try:
			return cls(str(raw or "").strip().lower())
		except ValueError:
			return default


class _AllFilter:
	"""Filter value meaning "no filter". Distinct from False/0/None."""

	def __repr__(self) -> str:
		return "ALL"

	def __bool__(self) -> bool:
		return False


ALL: Any = _AllFilter()


@dataclass(frozen=True)
class QueryState:
	search_text: str = ""
	filters: Mapping[str, Any] = field(default_factory=dict)
	page: int = 1
	page_size: int = DEFAULT_PAGE_SIZE


@dataclass(frozen=True)
class ResultSet:
	items: Tuple[Record, ...] = ()
	total_count: int = 0
	page: int = 1
	page_size: int = DEFAULT_PAGE_SIZE

	@property
	def page_count(self) -> int:
		return last_page(self.total_count, self.page_size)


class RemoteCollection(Protocol):
	def list(self, query: ListQuery) -> ListPage: ...
	def create(self, record: Mapping[str, Any]) -> Dict[str, Any]: ...
	def update(self, record_id: str, record: Mapping[str, Any]) -> Dict[str, Any]: ...
	def delete(self, record_id: str) -> None: ...


# (record, filter value) -> keep?
Predicate = Callable[[Record, Any], bool]
IoBound = Callable[..., Awaitable[Any]]
Listener = Callable[[ResultSet], None]


def last_page(total_count: int, page_size: int) -> int:
	if total_count <= 0:
		return 1
	return max(1, math.ceil(total_count / max(1, page_size)))


def clamp_page(page: int, total_count: int, page_size: int) -> int:
	return min(max(1, int(page)), last_page(total_count, page_size))


def _field_equals(name: str) -> Predicate:
	def predicate(record: Record, value: Any) -> bool:
		return field_value(record, name) == value
	return predicate


# ------------------------------------------------------------------ Controller

class ListController:
	"""
	Owns the QueryState of one collection view and publishes matching ResultSets.

	FetchMode.SERVER_PAGED:  every query change issues one remote `list` call.
	FetchMode.CLIENT_CACHED: one bulk fetch fills a cache; filter/search/page
	                         changes are recomputed locally.

	Results are applied in issue order: a response whose sequence number is
	older than the last issued request is dropped.
	"""

	def __init__(
		self,
		endpoint: RemoteCollection,
		*,
		fetch_mode: FetchMode = FetchMode.SERVER_PAGED,
		page_size: int = DEFAULT_PAGE_SIZE,
		search_fields: Iterable[str] = (),
		filter_predicates: Optional[Mapping[str, Predicate]] = None,
		search_delay_s: float = DEFAULT_SEARCH_DELAY_S,
		bulk_fetch_limit: int = DEFAULT_BULK_FETCH_LIMIT,
		io_bound: Optional[IoBound] = None,
		on_error: Optional[Callable[[str], None]] = None,
		on_unauthorized: Optional[Callable[[Unauthorized], None]] = None,
		name: str = "list",
	) -> None:
		if page_size <= 0:
			raise ValueError("page_size must be > 0")

		self.name = name
		self.fetch_mode = FetchMode(fetch_mode)
		self.last_error: Optional[AdminApiError] = None

		self._endpoint = endpoint
		self._search_fields = tuple(search_fields)
		self._predicates: Dict[str, Predicate] = dict(filter_predicates or {})
		self._bulk_fetch_limit = max(1, int(bulk_fetch_limit))
		self._io_bound: IoBound = io_bound or asyncio.to_thread
		self._on_error = on_error
		self._on_unauthorized = on_unauthorized

		self._query = QueryState(page_size=int(page_size))
		self._result = ResultSet(page_size=int(page_size))
		self._has_result = False

		self._cache: Optional[List[Record]] = None
		self._cache_stale = True

		self._seq = 0
		self._loading = False
		self._closed = False

		self._listeners: List[Listener] = []
		self._debouncer = Debouncer(search_delay_s, name=f"{name}.search")
		self._log = logger.bind(component="ListController", name=name)

	# ------------------------------------------------------------------ Reads

	def current_result_set(self) -> ResultSet:
		return self._result

	def query_state(self) -> QueryState:
		return self._query

	def loading_state(self) -> bool:
		return self._loading

	def subscribe(self, listener: Listener) -> Callable[[], None]:
		self._listeners.append(listener)

		def unsubscribe() -> None:
			try:
				self._listeners.remove(listener)
			except ValueError:
				pass

		return unsubscribe

	# ------------------------------------------------------------------ Query mutations

	def set_search_text(self, text: str) -> None:
		self._query = replace(self._query, search_text=str(text or ""), page=1)
		self._debouncer.schedule(self.refresh)

	async def set_filter(self, name: str, value: Any) -> None:
		self._debouncer.cancel()
		self._query = replace(self._query, filters=_with_filter(self._query.filters, name, value), page=1)
		await self.refresh()

	async def clear_filters(self) -> None:
		self._debouncer.cancel()
		self._query = replace(self._query, search_text="", filters={}, page=1)
		await self.refresh()

	async def set_page(self, page: int) -> None:
		self._debouncer.cancel()
		self._query = replace(self._query, page=self._clamp_known(int(page), self._query.page_size))
		await self.refresh()

	async def set_page_size(self, size: int) -> None:
		size = int(size)
		if size <= 0:
			raise ValueError("page_size must be > 0")
		self._debouncer.cancel()
		self._query = replace(self._query, page_size=size, page=self._clamp_known(self._query.page, size))
		await self.refresh()

	async def on_query_change(self, partial: Mapping[str, Any]) -> None:
		"""Apply a partial query from the UI; search-only edits are debounced."""
		query = self._query
		immediate = False
		reset_page = False

		if "search_text" in partial:
			text = str(partial.get("search_text") or "")
			if text != query.search_text:
				query = replace(query, search_text=text)
				reset_page = True

		filters = partial.get("filters")
		if isinstance(filters, Mapping):
			merged = query.filters
			for name, value in filters.items():
				merged = _with_filter(merged, name, value)
			if merged != query.filters:
				query = replace(query, filters=merged)
				reset_page = True
				immediate = True

		if "page_size" in partial and partial.get("page_size") is not None:
			size = int(partial["page_size"])
			if size <= 0:
				raise ValueError("page_size must be > 0")
			if size != query.page_size:
				query = replace(query, page_size=size)
				immediate = True

		if "page" in partial and partial.get("page") is not None and not reset_page:
			page = int(partial["page"])
			if page != query.page:
				query = replace(query, page=page)
				immediate = True

		if reset_page:
			query = replace(query, page=1)
		else:
			query = replace(query, page=self._clamp_known(query.page, query.page_size))

		search_changed = query.search_text != self._query.search_text
		self._query = query

		if immediate:
			self._debouncer.cancel()
			await self.refresh()
		elif search_changed:
			self._debouncer.schedule(self.refresh)

	# ------------------------------------------------------------------ Recompute

	async def refresh(self) -> None:
		"""Recompute the ResultSet for the current QueryState."""
		if self._closed:
			return
		if self.fetch_mode is FetchMode.CLIENT_CACHED:
			if self._cache is None or self._cache_stale:
				if not await self._load_cache():
					return
			self._recompute_local()
		else:
			await self._fetch_page()

	async def invalidate(self) -> None:
		self._cache_stale = True
		await self.refresh()

	def _recompute_local(self) -> None:
		query = self._query
		population = [r for r in (self._cache or []) if self._matches(r, query)]
		total = len(population)

		page = clamp_page(query.page, total, query.page_size)
		if page != query.page:
			self._log.debug(f"[_recompute_local] - page_clamped - requested={query.page} page={page} total={total}")
			query = replace(query, page=page)
			self._query = query

		start = (page - 1) * query.page_size
		items = tuple(population[start:start + query.page_size])
		self._publish(ResultSet(items=items, total_count=total, page=page, page_size=query.page_size))

	async def _load_cache(self) -> bool:
		seq = self._begin_fetch()
		query = ListQuery(page=1, page_size=self._bulk_fetch_limit)
		self._log.debug(f"[_load_cache] - bulk_fetch - seq={seq} limit={self._bulk_fetch_limit}")

		try:
			page = await self._call(seq, self._endpoint.list, query)
		except StaleResponse as ex:
			self._log.debug(f"[_load_cache] - stale_dropped - seq={ex.seq} latest={ex.latest}")
			return False
		except AdminApiError as ex:
			self._surface(ex)
			return False

		self._cache = list(page.items)
		self._cache_stale = False
		return True

	async def _fetch_page(self, *, clamped: bool = False) -> None:
		seq = self._begin_fetch()
		query = self._query
		request = ListQuery(
			page=query.page,
			page_size=query.page_size,
			search_text=query.search_text,
			filters=dict(query.filters),
		)
		self._log.debug(f"[_fetch_page] - fetch - seq={seq} page={query.page} size={query.page_size} search={query.search_text!r} filters={dict(query.filters)!r}")

		try:
			page = await self._call(seq, self._endpoint.list, request)
		except StaleResponse as ex:
			self._log.debug(f"[_fetch_page] - stale_dropped - seq={ex.seq} latest={ex.latest}")
			return
		except AdminApiError as ex:
			self._surface(ex)
			return

		total = max(0, int(page.total_count))
		valid_page = clamp_page(query.page, total, query.page_size)
		if valid_page != query.page and not clamped:
			self._log.debug(f"[_fetch_page] - page_clamped - requested={query.page} page={valid_page} total={total}")
			self._query = replace(self._query, page=valid_page)
			await self._fetch_page(clamped=True)
			return

		items = tuple(page.items[:query.page_size])
		self._publish(ResultSet(items=items, total_count=total, page=query.page, page_size=query.page_size))

	# ------------------------------------------------------------------ Mutations

	async def create_record(self, values: Mapping[str, Any]) -> bool:
		return await self._mutate("create", self._endpoint.create, dict(values))

	async def update_record(self, record_id: str, values: Mapping[str, Any]) -> bool:
		return await self._mutate("update", self._endpoint.update, str(record_id), dict(values))

	async def delete_record(self, record_id: str) -> bool:
		return await self._mutate("delete", self._endpoint.delete, str(record_id))

	async def _mutate(self, action: str, fn: Callable[..., Any], *args: Any) -> bool:
		if self._closed:
			return False
		self._log.info(f"[_mutate] - {action} - args={args[:1]!r}")
		try:
			await self._io_bound(fn, *args)
		except AdminApiError as ex:
			self._surface(ex)
			return False
		await self.invalidate()
		return True

	# ------------------------------------------------------------------ Lifecycle

	def close(self) -> None:
		self._closed = True
		self._debouncer.cancel()
		self._listeners.clear()
		self._loading = False

	# ------------------------------------------------------------------ Internals

	def _begin_fetch(self) -> int:
		self._seq += 1
		self._loading = True
		return self._seq

	async def _call(self, seq: int, fn: Callable[..., Any], *args: Any) -> Any:
		"""Run a remote call; raise StaleResponse if a newer call was issued meanwhile."""
		try:
			result = await self._io_bound(fn, *args)
		except AdminApiError:
			self._check_current(seq)
			raise
		finally:
			if seq == self._seq:
				self._loading = False
		self._check_current(seq)
		return result

	def _check_current(self, seq: int) -> None:
		if self._closed or seq != self._seq:
			raise StaleResponse(seq, self._seq)

	def _clamp_known(self, page: int, page_size: int) -> int:
		if not self._has_result:
			return max(1, page)
		if self.fetch_mode is FetchMode.CLIENT_CACHED:
			# local recompute clamps against the filtered population itself
			return max(1, page)
		return clamp_page(page, self._result.total_count, page_size)

	def _matches(self, record: Record, query: QueryState) -> bool:
		needle = query.search_text.strip().lower()
		if needle and self._search_fields:
			if not any(needle in str(field_value(record, f) or "").lower() for f in self._search_fields):
				return False
		for name, value in query.filters.items():
			predicate = self._predicates.get(name) or _field_equals(name)
			if not predicate(record, value):
				return False
		return True

	def _publish(self, result: ResultSet) -> None:
		self._result = result
		self._has_result = True
		self.last_error = None
		for listener in list(self._listeners):
			try:
				listener(result)
			except Exception:
				self._log.exception(f"[_publish] - listener_failed - listener={listener!r}")

	def _surface(self, ex: AdminApiError) -> None:
		self.last_error = ex
		if isinstance(ex, Unauthorized):
			self._log.warning(f"[_surface] - unauthorized - message={ex.message!r}")
			if self._on_unauthorized is not None:
				self._on_unauthorized(ex)
			return

		self._log.error(f"[_surface] - remote_error - status={ex.status} message={ex.message!r}")
		if self._on_error is not None:
			self._on_error(ex.message or "Request failed")


def _with_filter(filters: Mapping[str, Any], name: str, value: Any) -> Dict[str, Any]:
	out = dict(filters)
	if value is ALL:
		out.pop(str(name), None)
	else:
		out[str(name)] = value
	return out
