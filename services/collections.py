from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from services.admin_api import EndpointSpec
from services.form_validation import CrossCheck, FieldSpec, date_not_before
from services.formatting import (
	format_bool,
	format_coupon_value,
	format_currency,
	format_date,
	format_datetime,
	format_rating,
	format_usage,
	is_expired,
	shorten,
)
from services.list_controller import FetchMode, Predicate
from services.lookups import ORDERS_LOOKUP, USERS_LOOKUP
from services.records import Record, field_value


CellFormatter = Callable[[Record], str]


@dataclass(frozen=True)
class ColumnDef:
	name: str
	label: str
	field: str = ""
	formatter: Optional[CellFormatter] = None

	def render(self, record: Record) -> str:
		if self.formatter is not None:
			return self.formatter(record)
		value = field_value(record, self.field or self.name)
		return "-" if value is None or value == "" else str(value)


@dataclass(frozen=True)
class FilterDef:
	name: str
	label: str
	options: Mapping[Any, str]
	predicate: Optional[Predicate] = None


@dataclass(frozen=True)
class CollectionDef:
	key: str
	title: str
	icon: str
	endpoint: EndpointSpec
	fetch_mode: FetchMode
	search_fields: tuple[str, ...] = ()
	search_label: str = "Search"
	filters: tuple[FilterDef, ...] = ()
	columns: tuple[ColumnDef, ...] = ()
	form_fields: tuple[FieldSpec, ...] = ()
	form_checks: tuple[CrossCheck, ...] = ()

	@property
	def filter_predicates(self) -> dict[str, Predicate]:
		return {f.name: f.predicate for f in self.filters if f.predicate is not None}


# ------------------------------------------------------------------ Coupon rules

def is_coupon_active(record: Record) -> bool:
	"""Enabled, not expired and below its usage limit (0 = unlimited)."""
	if not bool(field_value(record, "isActive")):
		return False
	if is_expired(field_value(record, "endDate")):
		return False
	try:
		limit = int(field_value(record, "usageLimit") or 0)
		count = int(field_value(record, "usageCount") or 0)
	except (TypeError, ValueError):
		return True
	return limit == 0 or count < limit


def _coupon_active_predicate(record: Record, value: Any) -> bool:
	return is_coupon_active(record) == bool(value)


def _named(name_field: str) -> CellFormatter:
	"""Render a reference that may be an id string or a populated object."""
	def fmt(record: Record) -> str:
		ref = field_value(record, name_field.split(".")[0])
		if isinstance(ref, Mapping):
			return str(field_value(record, name_field) or ref.get("_id") or "-")
		return "-" if ref in (None, "") else str(ref)
	return fmt


# ------------------------------------------------------------------ Catalog

BRANDS = CollectionDef(
	key="brands",
	title="Brands",
	icon="sell",
	endpoint=EndpointSpec(path="brands", items_key="brands", label="brand"),
	fetch_mode=FetchMode.CLIENT_CACHED,
	search_fields=("brand_name", "description", "slug"),
	search_label="Search name, description or slug",
	columns=(
		ColumnDef("brand_name", "Brand name"),
		ColumnDef("description", "Description", formatter=lambda r: shorten(field_value(r, "description"), 80) or "-"),
		ColumnDef("slug", "Slug"),
		ColumnDef("createdAt", "Created", formatter=lambda r: format_date(field_value(r, "createdAt"))),
	),
	form_fields=(
		FieldSpec("brand_name", "Brand name", required=True, min_length=2, max_length=50),
		FieldSpec("description", "Description", kind="textarea", required=True, max_length=500),
		FieldSpec("slug", "Slug", required=True, min_length=2, max_length=50),
	),
)

COUPONS = CollectionDef(
	key="coupons",
	title="Coupons",
	icon="local_offer",
	endpoint=EndpointSpec(path="coupons", items_key="coupons", label="coupon"),
	fetch_mode=FetchMode.CLIENT_CACHED,
	search_fields=("code",),
	search_label="Search coupon code",
	filters=(
		FilterDef("type", "Type", {"percentage": "Percentage", "fixed": "Fixed amount"}),
		FilterDef("active", "Status", {True: "Active", False: "Inactive"}, predicate=_coupon_active_predicate),
	),
	columns=(
		ColumnDef("code", "Code", formatter=lambda r: str(field_value(r, "code") or "").upper() or "-"),
		ColumnDef("type", "Type", formatter=lambda r: "Percentage" if field_value(r, "type") == "percentage" else "Fixed amount"),
		ColumnDef("value", "Value", formatter=lambda r: format_coupon_value(field_value(r, "value"), field_value(r, "type"))),
		ColumnDef("minPurchase", "Min. purchase", formatter=lambda r: format_currency(field_value(r, "minPurchase"))),
		ColumnDef(
			"period",
			"Valid",
			formatter=lambda r: f"{format_date(field_value(r, 'startDate'))} - {format_date(field_value(r, 'endDate'))}",
		),
		ColumnDef("usage", "Usage", formatter=lambda r: format_usage(field_value(r, "usageCount"), field_value(r, "usageLimit"))),
		ColumnDef("status", "Status", formatter=lambda r: format_bool(is_coupon_active(r), "Active", "Inactive")),
	),
	form_fields=(
		FieldSpec("code", "Code", required=True, min_length=2, max_length=50),
		FieldSpec("type", "Type", kind="select", required=True, options={"percentage": "Percentage (%)", "fixed": "Fixed amount (VND)"}),
		FieldSpec("value", "Value", kind="number", required=True, min_value=0),
		FieldSpec("minPurchase", "Min. purchase", kind="number", required=True, min_value=0),
		FieldSpec("startDate", "Start date", kind="date", required=True),
		FieldSpec("endDate", "End date", kind="date", required=True),
		FieldSpec("usageLimit", "Usage limit (0 = unlimited)", kind="number", min_value=0, default=0),
		FieldSpec("usageCount", "Usage count", kind="number", required=True, min_value=0, default=0),
		FieldSpec("isActive", "Active", kind="switch", default=True),
	),
	form_checks=(date_not_before("startDate", "endDate", "End date must not be before start date."),),
)

REVIEWS = CollectionDef(
	key="reviews",
	title="Reviews",
	icon="reviews",
	endpoint=EndpointSpec(path="reviews", items_key="reviews", label="review"),
	fetch_mode=FetchMode.SERVER_PAGED,
	search_fields=("title", "comment"),
	search_label="Search title or comment",
	filters=(FilterDef("isVerified", "Verified", {True: "Verified", False: "Not verified"}),),
	columns=(
		ColumnDef("rating", "Rating", formatter=lambda r: format_rating(field_value(r, "rating"))),
		ColumnDef("title", "Title"),
		ColumnDef("comment", "Comment", formatter=lambda r: shorten(field_value(r, "comment"), 60) or "-"),
		ColumnDef("isVerified", "Verified", formatter=lambda r: format_bool(field_value(r, "isVerified"), "Verified", "Not verified")),
		ColumnDef("product", "Product", formatter=_named("product.name")),
		ColumnDef("user", "User", formatter=_named("user.userName")),
		ColumnDef("createdAt", "Created", formatter=lambda r: format_datetime(field_value(r, "createdAt"))),
	),
	form_fields=(
		FieldSpec("rating", "Rating", kind="number", required=True, min_value=1, max_value=5, default=5),
		FieldSpec("title", "Title", max_length=100),
		FieldSpec("comment", "Comment", kind="textarea", required=True, max_length=1000),
		FieldSpec("images", "Images (comma separated URLs)", kind="list"),
		FieldSpec("isVerified", "Verified", kind="switch", default=False),
		FieldSpec("product", "Product id", required=True),
		FieldSpec("user", "User id", required=True),
	),
)

SETTINGS = CollectionDef(
	key="settings",
	title="Settings",
	icon="tune",
	endpoint=EndpointSpec(path="settings", items_key="settings", label="setting", requires_auth=False),
	fetch_mode=FetchMode.SERVER_PAGED,
	search_fields=("key",),
	search_label="Search key",
	filters=(
		FilterDef("type", "Type", {"string": "String", "number": "Number", "boolean": "Boolean", "object": "Object", "array": "Array"}),
		FilterDef("isPublic", "Visibility", {True: "Public", False: "Private"}),
	),
	columns=(
		ColumnDef("key", "Key"),
		ColumnDef("value", "Value", formatter=lambda r: shorten(field_value(r, "value"), 60) or "-"),
		ColumnDef("type", "Type"),
		ColumnDef("group", "Group"),
		ColumnDef("isPublic", "Public", formatter=lambda r: format_bool(field_value(r, "isPublic"), "Public", "Private")),
		ColumnDef("description", "Description", formatter=lambda r: shorten(field_value(r, "description"), 60) or "-"),
		ColumnDef("createdAt", "Created", formatter=lambda r: format_datetime(field_value(r, "createdAt"))),
	),
	form_fields=(
		FieldSpec("key", "Key", required=True, max_length=100),
		FieldSpec("type", "Type", kind="select", required=True, default="string",
			options={"string": "String", "number": "Number", "boolean": "Boolean", "object": "Object", "array": "Array"}),
		FieldSpec("value", "Value", kind="textarea", required=True),
		FieldSpec("group", "Group", required=True, max_length=50),
		FieldSpec("isPublic", "Public", kind="switch", default=False),
		FieldSpec("description", "Description", kind="textarea", max_length=255),
	),
)

_SHIPPING_STATUS = {"processing": "Processing", "shipped": "Shipped", "delivered": "Delivered", "failed": "Failed"}

SHIPPINGS = CollectionDef(
	key="shippings",
	title="Shipping",
	icon="local_shipping",
	endpoint=EndpointSpec(path="shippings", items_key="shippings", label="shipping", search_param="carrier"),
	fetch_mode=FetchMode.SERVER_PAGED,
	search_fields=("carrier",),
	search_label="Search carrier",
	filters=(FilterDef("status", "Status", _SHIPPING_STATUS),),
	columns=(
		ColumnDef("carrier", "Carrier"),
		ColumnDef("trackingNumber", "Tracking number"),
		ColumnDef("status", "Status", formatter=lambda r: _SHIPPING_STATUS.get(str(field_value(r, "status")), "-")),
		ColumnDef("shippingMethod", "Method"),
		ColumnDef("shippingFee", "Fee", formatter=lambda r: format_currency(field_value(r, "shippingFee"))),
		ColumnDef("order", "Order", formatter=_named("order.orderNumber")),
		ColumnDef("estimatedDelivery", "Estimated", formatter=lambda r: format_datetime(field_value(r, "estimatedDelivery"))),
		ColumnDef("actualDelivery", "Delivered", formatter=lambda r: format_datetime(field_value(r, "actualDelivery"))),
	),
	form_fields=(
		FieldSpec("carrier", "Carrier", required=True, max_length=100),
		FieldSpec("trackingNumber", "Tracking number", max_length=100),
		FieldSpec("status", "Status", kind="select", required=True, options=_SHIPPING_STATUS, default="processing"),
		FieldSpec("estimatedDelivery", "Estimated delivery", kind="date"),
		FieldSpec("actualDelivery", "Actual delivery", kind="date"),
		FieldSpec("shippingMethod", "Shipping method", required=True, max_length=50),
		FieldSpec("shippingFee", "Shipping fee", kind="number", required=True, min_value=0),
		FieldSpec("order", "Order", kind="select", required=True, lookup=ORDERS_LOOKUP),
	),
)

TECH_NEWS = CollectionDef(
	key="technews",
	title="Tech news",
	icon="newspaper",
	endpoint=EndpointSpec(path="technews", items_key="techNews", label="tech news", search_param="title"),
	fetch_mode=FetchMode.SERVER_PAGED,
	search_fields=("title",),
	search_label="Search title",
	columns=(
		ColumnDef("title", "Title"),
		ColumnDef("keyword", "Keyword"),
		ColumnDef("description", "Description", formatter=lambda r: shorten(field_value(r, "description"), 80) or "-"),
		ColumnDef("date", "Date", formatter=lambda r: format_date(field_value(r, "date"))),
		ColumnDef("createdAt", "Created", formatter=lambda r: format_datetime(field_value(r, "createdAt"))),
	),
	form_fields=(
		FieldSpec("title", "Title", required=True, min_length=2, max_length=150),
		FieldSpec("keyword", "Keyword", required=True, min_length=2, max_length=50),
		FieldSpec("thumbnail", "Thumbnail URL", max_length=255),
		FieldSpec("description", "Description", kind="textarea", required=True, max_length=255),
		FieldSpec("content", "Content", kind="textarea", required=True),
		FieldSpec("date", "Date", kind="date"),
	),
)

_VENDOR_STATUS = {"pending": "Pending", "active": "Active", "suspended": "Suspended"}

VENDORS = CollectionDef(
	key="vendors",
	title="Vendors",
	icon="storefront",
	endpoint=EndpointSpec(path="vendors", items_key="vendors", label="vendor", requires_auth=False),
	fetch_mode=FetchMode.SERVER_PAGED,
	search_fields=("companyName",),
	search_label="Search company",
	filters=(FilterDef("status", "Status", _VENDOR_STATUS),),
	columns=(
		ColumnDef("companyName", "Company"),
		ColumnDef("status", "Status", formatter=lambda r: _VENDOR_STATUS.get(str(field_value(r, "status")), "-")),
		ColumnDef("rating", "Rating"),
		ColumnDef("contactEmail", "Email"),
		ColumnDef("contactPhone", "Phone"),
		ColumnDef(
			"address",
			"Address",
			formatter=lambda r: ", ".join(
				str(field_value(r, f"address.{part}"))
				for part in ("street", "ward", "district", "city")
				if field_value(r, f"address.{part}")
			) or "-",
		),
		ColumnDef("createdAt", "Created", formatter=lambda r: format_date(field_value(r, "createdAt"))),
	),
	form_fields=(
		FieldSpec("companyName", "Company name", required=True, max_length=100),
		FieldSpec("contactPhone", "Contact phone", required=True, max_length=20),
		FieldSpec("contactEmail", "Contact email", required=True, max_length=100, email=True),
		FieldSpec("website", "Website", max_length=255),
		FieldSpec("description", "Description", kind="textarea", max_length=1000),
		FieldSpec("logoUrl", "Logo URL", max_length=255),
		FieldSpec("coverImageUrl", "Cover image URL", max_length=255),
		FieldSpec("address.street", "Street", required=True),
		FieldSpec("address.ward", "Ward", required=True),
		FieldSpec("address.district", "District", required=True),
		FieldSpec("address.city", "City", required=True),
		FieldSpec("address.country", "Country", default="Vietnam"),
		FieldSpec("address.postalCode", "Postal code"),
		FieldSpec("rating", "Rating", kind="number", required=True, min_value=0, max_value=5, default=0),
		FieldSpec("status", "Status", kind="select", required=True, options=_VENDOR_STATUS, default="pending"),
		FieldSpec("user", "User", kind="select", required=True, lookup=USERS_LOOKUP),
	),
)


COLLECTIONS: dict[str, CollectionDef] = {
	c.key: c for c in (BRANDS, COUPONS, REVIEWS, SETTINGS, SHIPPINGS, TECH_NEWS, VENDORS)
}


def get_collection(key: str) -> CollectionDef:
	try:
		return COLLECTIONS[key]
	except KeyError:
		raise KeyError(f"unknown collection: {key!r}") from None
