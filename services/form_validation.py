from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence

from services.errors import ValidationError
from services.formatting import parse_datetime
from services.lookups import LookupSource
from services.records import field_value, set_nested


FIELD_KINDS = ("text", "textarea", "number", "select", "switch", "date", "list")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class FieldSpec:
	name: str				# dotted names build nested payloads, e.g. "address.city"
	label: str
	kind: str = "text"
	required: bool = False
	min_length: Optional[int] = None
	max_length: Optional[int] = None
	min_value: Optional[float] = None
	max_value: Optional[float] = None
	options: Mapping[Any, str] = field(default_factory=dict)
	email: bool = False
	default: Any = None
	# options loaded from another collection (kind "select")
	lookup: Optional[LookupSource] = None


# (cleaned payload) -> {field: message}
CrossCheck = Callable[[Mapping[str, Any]], dict[str, str]]


def _is_empty(value: Any) -> bool:
	if value is None:
		return True
	if isinstance(value, str):
		return not value.strip()
	if isinstance(value, (list, tuple)):
		return len(value) == 0
	return False


def _clean(spec: FieldSpec, raw: Any) -> tuple[Any, Optional[str]]:
	"""Return (value, error) for a single field."""
	if spec.kind == "switch":
		return bool(raw), None

	if _is_empty(raw):
		if spec.required:
			return None, f"{spec.label} is required."
		if spec.kind == "list":
			return [], None
		return None, None

	if spec.kind in ("text", "textarea"):
		value = str(raw).strip()
		if spec.min_length is not None and len(value) < spec.min_length:
			return value, f"{spec.label} must be at least {spec.min_length} characters."
		if spec.max_length is not None and len(value) > spec.max_length:
			return value, f"{spec.label} cannot exceed {spec.max_length} characters."
		if spec.email and not _EMAIL_RE.match(value):
			return value, f"{spec.label} must be a valid email."
		return value, None

	if spec.kind == "number":
		try:
			value = float(raw)
		except (TypeError, ValueError):
			return raw, f"{spec.label} must be a number."
		if value.is_integer():
			value = int(value)
		if spec.min_value is not None and value < spec.min_value:
			return value, f"{spec.label} must be at least {spec.min_value:g}."
		if spec.max_value is not None and value > spec.max_value:
			return value, f"{spec.label} must be at most {spec.max_value:g}."
		return value, None

	if spec.kind == "select":
		if spec.lookup is None and spec.options and raw not in spec.options:
			return raw, f"{spec.label} has an invalid value."
		return raw, None

	if spec.kind == "date":
		dt = parse_datetime(raw)
		if dt is None:
			return raw, f"{spec.label} must be a valid date."
		return dt.isoformat(), None

	if spec.kind == "list":
		if isinstance(raw, (list, tuple)):
			items = [str(v).strip() for v in raw]
		else:
			items = [part.strip() for part in str(raw).split(",")]
		return [v for v in items if v], None

	return raw, None


def validate_record(
	fields: Sequence[FieldSpec],
	values: Mapping[str, Any],
	*,
	checks: Sequence[CrossCheck] = (),
) -> dict[str, Any]:
	"""
	Validate form values (keyed by FieldSpec.name) and build the request payload.

	Raises ValidationError with one message per failing field.
	"""
	payload: dict[str, Any] = {}
	errors: dict[str, str] = {}

	for spec in fields:
		value, error = _clean(spec, values.get(spec.name))
		if error:
			errors[spec.name] = error
			continue
		if value is None:
			continue
		set_nested(payload, spec.name, value)

	if not errors:
		for check in checks:
			errors.update(check(payload) or {})

	if errors:
		raise ValidationError(errors)
	return payload


def initial_values(fields: Sequence[FieldSpec], record: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
	"""Form values for a new record (defaults) or an edited one."""
	out: dict[str, Any] = {}
	for spec in fields:
		if record is None:
			out[spec.name] = spec.default
			continue
		value = field_value(record, spec.name, spec.default)
		if spec.kind == "list" and isinstance(value, (list, tuple)):
			value = ", ".join(str(v) for v in value)
		elif isinstance(value, Mapping):
			# populated reference, edit by id
			value = value.get("_id", value.get("id"))
		elif spec.kind == "date":
			dt = parse_datetime(value)
			value = dt.date().isoformat() if dt else None
		out[spec.name] = value
	return out


def date_not_before(start_field: str, end_field: str, message: str) -> CrossCheck:
	def check(payload: Mapping[str, Any]) -> dict[str, str]:
		start = parse_datetime(field_value(payload, start_field))
		end = parse_datetime(field_value(payload, end_field))
		if start is not None and end is not None and end < start:
			return {end_field: message}
		return {}
	return check
