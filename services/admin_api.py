from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote

import requests
from loguru import logger

from services.errors import RemoteError, Unauthorized


# ------------------------------------------------------------------ Models

@dataclass
class ApiSession:
	"""Credentials handed to every endpoint explicitly (no global auth store)."""
	access_token: str = ""

	def auth_headers(self) -> Dict[str, str]:
		token = str(self.access_token or "").strip()
		return {"Authorization": f"Bearer {token}"} if token else {}

	@property
	def has_token(self) -> bool:
		return bool(str(self.access_token or "").strip())


@dataclass(frozen=True)
class ListQuery:
	page: int = 1
	page_size: int = 10
	search_text: str = ""
	filters: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ListPage:
	items: List[Dict[str, Any]] = field(default_factory=list)
	total_count: int = 0


@dataclass
class EndpointSpec:
	path: str
	items_key: str
	label: str = "record"
	search_param: str = "search"
	requires_auth: bool = True


# ------------------------------------------------------------------ Endpoint

class CollectionEndpoint:
	"""
	REST client for one admin collection.

	GET    {base}/{path}?page=&limit=     -> {"data": {items_key: [...], "pagination": {...}}}
	POST   {base}/{path}                  -> {"data": {...}}
	PUT    {base}/{path}/{id}             -> {"data": {...}}
	DELETE {base}/{path}/{id}
	"""

	def __init__(
		self,
		base_url: str,
		spec: EndpointSpec,
		*,
		session: ApiSession,
		timeout_s: float = 10.0,
		verify_ssl: bool = True,
		http: Optional[requests.Session] = None,
	) -> None:
		self.base_url = str(base_url or "").strip()
		self.spec = spec
		self.session = session
		self.timeout_s = float(timeout_s)
		self.verify_ssl = bool(verify_ssl)
		self._http = http or requests.Session()
		self._log = logger.bind(component="CollectionEndpoint", collection=spec.path)

	# ------------------------------------------------------------------ Operations

	def list(self, query: ListQuery) -> ListPage:
		params: Dict[str, Any] = {
			"page": int(query.page),
			"limit": int(query.page_size),
		}
		search = str(query.search_text or "").strip()
		if search and self.spec.search_param:
			params[self.spec.search_param] = search
		for name, value in (query.filters or {}).items():
			params[str(name)] = _param_value(value)

		body = self._request("GET", self.spec.path, params=params,
			default_message=f"Failed to load {self.spec.label} list")
		return _parse_list_page(body, self.spec.items_key)

	def create(self, record: Mapping[str, Any]) -> Dict[str, Any]:
		body = self._request("POST", self.spec.path, json_body=dict(record),
			default_message=f"Failed to create {self.spec.label}")
		return _unwrap_record(body, self.spec)

	def update(self, record_id: str, record: Mapping[str, Any]) -> Dict[str, Any]:
		body = self._request("PUT", self._item_path(record_id), json_body=dict(record),
			default_message=f"Failed to update {self.spec.label}")
		return _unwrap_record(body, self.spec)

	def delete(self, record_id: str) -> None:
		self._request("DELETE", self._item_path(record_id),
			default_message=f"Failed to delete {self.spec.label}")

	# ------------------------------------------------------------------ Transport

	def _item_path(self, record_id: str) -> str:
		rid = str(record_id or "").strip()
		if not rid:
			raise RemoteError(f"Missing {self.spec.label} id")
		return f"{self.spec.path.rstrip('/')}/{quote(rid, safe='')}"

	def _request(
		self,
		method: str,
		path: str,
		*,
		params: Optional[Dict[str, Any]] = None,
		json_body: Optional[Dict[str, Any]] = None,
		default_message: str,
	) -> Any:
		if self.spec.requires_auth and not self.session.has_token:
			raise Unauthorized("Please log in to continue")

		url = _join_url(self.base_url, path)
		headers: Dict[str, str] = {"Accept": "application/json"}
		headers.update(self.session.auth_headers())

		self._log.info(
			f"HTTP REQ: method={method} url={url} params={params!r} "
			f"headers={_shorten_json(_redact_for_log(headers), 400)} body={_shorten_json(_redact_for_log(json_body), 800)}"
		)
		start = time.time()

		try:
			resp = self._http.request(
				method=method,
				url=url,
				params=params,
				headers=headers,
				json=json_body,
				timeout=self.timeout_s,
				verify=self.verify_ssl,
			)
		except requests.RequestException as ex:
			elapsed_ms = round((time.time() - start) * 1000.0, 2)
			self._log.warning(f"HTTP ERR: method={method} url={url} elapsed_ms={elapsed_ms} err={ex!r}")
			raise RemoteError(default_message) from ex

		elapsed_ms = round((time.time() - start) * 1000.0, 2)
		status = int(resp.status_code)
		body = _maybe_json(resp)
		self._log.info(f"HTTP RESP: method={method} url={url} status={status} elapsed_ms={elapsed_ms}")

		if status == 401:
			raise Unauthorized(_backend_message(body) or "Session expired. Please log in again", status=status)
		if not 200 <= status < 300:
			raise RemoteError(_backend_message(body) or default_message, status=status)
		return body


# ------------------------------------------------------------------ Helpers

def _join_url(base_url: str, path: str) -> str:
	base = str(base_url or "").strip()
	p = str(path or "").strip()
	if not p:
		return base
	return f"{base.rstrip('/')}/{p.lstrip('/')}"


def _param_value(value: Any) -> Any:
	if isinstance(value, bool):
		return "true" if value else "false"
	return value


def _maybe_json(resp: requests.Response) -> Any:
	text = resp.text or ""
	if not text.strip():
		return None
	try:
		return json.loads(text)
	except ValueError:
		return None


def _backend_message(body: Any) -> str:
	if isinstance(body, dict):
		msg = body.get("message")
		if isinstance(msg, str) and msg.strip():
			return msg.strip()
	return ""


def _parse_list_page(body: Any, items_key: str) -> ListPage:
	if not isinstance(body, dict):
		raise RemoteError("Unexpected response from server")

	data = body.get("data")
	if isinstance(data, list):
		items = data
		pagination: Any = {}
	elif isinstance(data, dict):
		items = data.get(items_key)
		if items is None:
			items = data.get("items", [])
		pagination = data.get("pagination") or {}
	else:
		raise RemoteError("Unexpected response from server")

	if not isinstance(items, list):
		raise RemoteError("Unexpected response from server")
	records = [dict(r) for r in items if isinstance(r, dict)]

	total = None
	if isinstance(pagination, dict):
		for key in ("total", "totalRecord", "totalItems", "totalCount"):
			if pagination.get(key) is not None:
				total = pagination.get(key)
				break
	try:
		total_count = int(total) if total is not None else len(records)
	except (TypeError, ValueError):
		total_count = len(records)

	return ListPage(items=records, total_count=max(total_count, len(records)))


def _unwrap_record(body: Any, spec: EndpointSpec) -> Dict[str, Any]:
	if not isinstance(body, dict):
		return {}
	data = body.get("data")
	if not isinstance(data, dict):
		return {}
	# some routes wrap the record once more, e.g. {"data": {"brand": {...}}}
	for key in (spec.label, spec.items_key.rstrip("s")):
		inner = data.get(key)
		if isinstance(inner, dict):
			return dict(inner)
	return dict(data)


def _redact_for_log(value: Any) -> Any:
	sensitive = {"authorization", "token", "access_token", "refresh_token", "password"}

	if isinstance(value, dict):
		out = {}
		for k, v in value.items():
			if str(k).lower() in sensitive:
				out[k] = "***REDACTED***"
			else:
				out[k] = _redact_for_log(v)
		return out

	if isinstance(value, list):
		return [_redact_for_log(v) for v in value]

	return value


def _shorten_json(value: Any, n: int) -> str:
	try:
		s = json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)
	except (TypeError, ValueError):
		s = repr(value)
	if len(s) <= n:
		return s
	return s[:n] + "..."
