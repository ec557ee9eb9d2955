from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional


def format_currency(amount: Any) -> str:
	"""VND style: 1.234.567 ₫ (no fraction digits)."""
	try:
		value = Decimal(str(amount if amount not in (None, "") else 0))
	except (InvalidOperation, ValueError):
		return "-"
	rounded = int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
	sign = "-" if rounded < 0 else ""
	digits = f"{abs(rounded):,}".replace(",", ".")
	return f"{sign}{digits} ₫"


def parse_datetime(value: Any) -> Optional[datetime]:
	if value is None or value == "":
		return None
	if isinstance(value, datetime):
		return value
	if isinstance(value, date):
		return datetime(value.year, value.month, value.day)
	text = str(value).strip()
	if text.endswith("Z"):
		text = text[:-1] + "+00:00"
	try:
		return datetime.fromisoformat(text)
	except ValueError:
		return None


def format_date(value: Any) -> str:
	dt = parse_datetime(value)
	return dt.strftime("%d/%m/%Y") if dt else "-"


def format_datetime(value: Any) -> str:
	dt = parse_datetime(value)
	return dt.strftime("%d/%m/%Y %H:%M") if dt else "-"


def format_bool(value: Any, yes: str = "Yes", no: str = "No") -> str:
	return yes if bool(value) else no


def format_coupon_value(value: Any, coupon_type: Any) -> str:
	if str(coupon_type or "") == "percentage":
		return f"{value}%"
	return format_currency(value)


def format_usage(count: Any, limit: Any) -> str:
	try:
		limit_i = int(limit or 0)
	except (TypeError, ValueError):
		limit_i = 0
	return f"{int(count or 0)}/{limit_i if limit_i > 0 else '∞'}"


def is_expired(end_date: Any, *, now: Optional[datetime] = None) -> bool:
	end = parse_datetime(end_date)
	if end is None:
		return False
	if now is None:
		now = datetime.now(timezone.utc) if end.tzinfo else datetime.now()
	elif end.tzinfo is None and now.tzinfo is not None:
		now = now.replace(tzinfo=None)
	elif end.tzinfo is not None and now.tzinfo is None:
		end = end.replace(tzinfo=None)
	return end < now


def shorten(text: Any, max_len: int = 80) -> str:
	s = "" if text is None else str(text)
	if len(s) <= max_len:
		return s
	return s[: max(0, max_len - 3)] + "..."


def format_rating(value: Any, max_stars: int = 5) -> str:
	"""Star string for a 0..max_stars rating; "4.5" rounds half up, junk renders "-"."""
	try:
		stars = int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
	except (InvalidOperation, ValueError):
		return "-"
	stars = min(max(stars, 0), max_stars)
	return "★" * stars or "-"
