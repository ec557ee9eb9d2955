from __future__ import annotations

from typing import Any, Mapping


Record = Mapping[str, Any]

_MISSING = object()


def field_value(record: Any, name: str, default: Any = None) -> Any:
	"""Read a (possibly dotted) field, e.g. "address.city" or "product.name"."""
	current = record
	for part in str(name or "").split("."):
		if not isinstance(current, Mapping):
			return default
		current = current.get(part, _MISSING)
		if current is _MISSING:
			return default
	return current


def record_id(record: Any) -> str:
	if not isinstance(record, Mapping):
		return ""
	value = record.get("_id", record.get("id"))
	return "" if value is None else str(value)


def set_nested(target: dict[str, Any], name: str, value: Any) -> None:
	parts = str(name).split(".")
	node = target
	for part in parts[:-1]:
		child = node.get(part)
		if not isinstance(child, dict):
			child = {}
			node[part] = child
		node = child
	node[parts[-1]] = value
