from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from nicegui import run, ui
from loguru import logger

from layout.context import PageContext
from layout.page_scaffold import build_page
from pages.record_dialog import create_confirm_dialog, create_record_dialog
from services.admin_api import CollectionEndpoint
from services.app_config import get_app_config, get_collection_config
from services.collections import CollectionDef
from services.errors import AdminApiError, Unauthorized
from services.form_validation import FieldSpec
from services.list_controller import ALL, FetchMode, ListController, ResultSet
from services.lookups import LookupLoader
from services.records import Record, record_id


LOADING_SYNC_S = 0.2


def build_controller(ctx: PageContext, collection: CollectionDef, container: ui.element) -> ListController:
	cfg = ctx.config or get_app_config()
	overrides = get_collection_config(cfg, collection.key)
	log = logger.bind(component="CollectionPage", collection=collection.key)

	endpoint = CollectionEndpoint(
		cfg.api.base_url,
		collection.endpoint,
		session=ctx.session,
		timeout_s=cfg.api.timeout_s,
		verify_ssl=cfg.api.verify_ssl,
	)

	def on_error(message: str) -> None:
		# may be called from the debounce task, outside the handler slot
		with container:
			ui.notify(message, type="negative")

	def on_unauthorized(ex: Unauthorized) -> None:
		log.warning(f"[on_unauthorized] - redirect - login_url={cfg.ui.login_url}")
		with container:
			ui.navigate.to(cfg.ui.login_url)

	return ListController(
		endpoint,
		fetch_mode=FetchMode.parse(overrides.fetch_mode, collection.fetch_mode),
		page_size=overrides.page_size or cfg.lists.default_page_size,
		search_fields=collection.search_fields,
		filter_predicates=collection.filter_predicates,
		search_delay_s=max(0, cfg.lists.search_debounce_ms) / 1000.0,
		bulk_fetch_limit=cfg.lists.bulk_fetch_limit,
		io_bound=run.io_bound,
		on_error=on_error,
		on_unauthorized=on_unauthorized,
		name=collection.key,
	)


def _table_columns(collection: CollectionDef) -> list[dict[str, Any]]:
	columns = [
		{"name": c.name, "label": c.label, "field": c.name, "align": "left"}
		for c in collection.columns
	]
	columns.append({"name": "actions", "label": "", "field": "_rid", "align": "right"})
	return columns


def _to_rows(collection: CollectionDef, result: ResultSet, records_by_id: Dict[str, Record]) -> list[dict[str, Any]]:
	records_by_id.clear()
	rows: list[dict[str, Any]] = []
	for index, record in enumerate(result.items):
		rid = record_id(record) or f"row-{index}"
		records_by_id[rid] = record
		row: dict[str, Any] = {"_rid": rid}
		for column in collection.columns:
			row[column.name] = column.render(record)
		rows.append(row)
	return rows


def render(container: ui.element, ctx: PageContext, collection: CollectionDef) -> None:
	cfg = ctx.config or get_app_config()
	log = logger.bind(component="CollectionPage", collection=collection.key)

	controller = build_controller(ctx, collection, container)
	ctx.controller = controller
	records_by_id: Dict[str, Record] = {}
	syncing = {"value": False}

	ui.context.client.on_disconnect(ctx.close)

	# ------------------------------------------------------------------ Dialogs

	async def submit(rid: Optional[str], payload: Dict[str, Any]) -> bool:
		label = collection.endpoint.label
		if rid is None:
			ok = await controller.create_record(payload)
			if ok:
				ui.notify(f"Created {label}", type="positive")
		else:
			ok = await controller.update_record(rid, payload)
			if ok:
				ui.notify(f"Updated {label}", type="positive")
		return ok

	lookups = LookupLoader(
		lambda spec: CollectionEndpoint(
			cfg.api.base_url,
			spec,
			session=ctx.session,
			timeout_s=cfg.api.timeout_s,
			verify_ssl=cfg.api.verify_ssl,
		),
		io_bound=run.io_bound,
	)

	async def load_options(spec: FieldSpec) -> Dict[str, str]:
		try:
			return await lookups.options(spec.lookup)
		except Unauthorized:
			log.warning(f"[load_options] - unauthorized - field={spec.name}")
			ui.navigate.to(cfg.ui.login_url)
		except AdminApiError as ex:
			log.warning(f"[load_options] - failed - field={spec.name} err={ex}")
			ui.notify(str(ex), type="negative")
		return {}

	_, open_record_dialog = create_record_dialog(collection, on_submit=submit, load_options=load_options)
	ask_confirm = create_confirm_dialog()

	async def on_edit(e: Any) -> None:
		row = e.args if isinstance(e.args, Mapping) else {}
		record = records_by_id.get(str(row.get("_rid") or ""))
		if record is None:
			log.warning(f"[on_edit] - unknown_row - row={row!r}")
			return
		await open_record_dialog(record)

	def on_delete(e: Any) -> None:
		row = e.args if isinstance(e.args, Mapping) else {}
		rid = str(row.get("_rid") or "")
		if rid not in records_by_id:
			return

		async def do_delete() -> None:
			if await controller.delete_record(rid):
				ui.notify(f"Deleted {collection.endpoint.label}", type="positive")

		ask_confirm(
			f"Delete {collection.endpoint.label}?",
			"This cannot be undone.",
			do_delete,
		)

	# ------------------------------------------------------------------ Toolbar

	filter_selects: Dict[str, ui.select] = {}
	search_input: Dict[str, Optional[ui.input]] = {"el": None}

	async def reset_filters() -> None:
		syncing["value"] = True
		try:
			if search_input["el"] is not None:
				search_input["el"].value = ""
			for select in filter_selects.values():
				select.value = None
		finally:
			syncing["value"] = False
		await controller.clear_filters()

	def build_toolbar(row: ui.element) -> None:
		ui.button("Reload", icon="refresh", on_click=controller.refresh).props("flat")
		ui.button(f"New {collection.endpoint.label}", icon="add", on_click=lambda: open_record_dialog(None)) \
			.props("unelevated color=primary")

	# ------------------------------------------------------------------ Content

	def build_content(area: ui.element) -> None:
		with ui.row().classes("w-full items-end gap-3"):
			def on_search(e: Any) -> None:
				if not syncing["value"]:
					controller.set_search_text(str(e.value or ""))

			search_input["el"] = ui.input(collection.search_label, on_change=on_search) \
				.props("clearable dense outlined") \
				.classes("w-72")

			for f in collection.filters:
				def on_filter(e: Any, name: str = f.name):
					# checked synchronously; Reset sets values programmatically
					if syncing["value"]:
						return None
					return controller.set_filter(name, ALL if e.value is None else e.value)

				filter_selects[f.name] = ui.select(
					options=dict(f.options),
					label=f.label,
					clearable=True,
					on_change=on_filter,
				).props("dense outlined").classes("w-48")

			ui.button("Reset", icon="filter_alt_off", on_click=reset_filters).props("flat")
			ui.space()
			total_label = ui.label("").classes("text-sm text-gray-500")

		result = controller.current_result_set()
		table = ui.table(
			columns=_table_columns(collection),
			rows=[],
			row_key="_rid",
			pagination={"page": result.page, "rowsPerPage": result.page_size, "rowsNumber": 0},
		).classes("w-full").props("flat bordered dense")
		table.props(f':rows-per-page-options="{json.dumps(list(cfg.lists.page_size_options))}"')
		table.add_slot("no-data", '<div class="w-full text-center text-gray-500 py-4">No records</div>')
		table.add_slot("body-cell-actions", """
			<q-td :props="props" class="text-right">
				<q-btn flat dense round icon="edit" @click="() => $parent.$emit('edit', props.row)" />
				<q-btn flat dense round icon="delete" color="negative" @click="() => $parent.$emit('delete', props.row)" />
			</q-td>
		""")
		table.on("edit", on_edit)
		table.on("delete", on_delete)

		async def on_request(e: Any) -> None:
			pagination = (e.args or {}).get("pagination") or {}
			await controller.on_query_change({
				"page": pagination.get("page"),
				"page_size": pagination.get("rowsPerPage") or None,
			})

		table.on("request", on_request)

		def apply_result(result: ResultSet) -> None:
			table.rows = _to_rows(collection, result, records_by_id)
			table.pagination = {
				"page": result.page,
				"rowsPerPage": result.page_size,
				"rowsNumber": result.total_count,
			}
			table.update()
			total_label.set_text(f"{result.total_count} records")

		controller.subscribe(apply_result)

		loading_shown = {"value": False}

		def sync_loading() -> None:
			loading = controller.loading_state()
			if loading == loading_shown["value"]:
				return
			loading_shown["value"] = loading
			if loading:
				table.props("loading")
			else:
				table.props(remove="loading")

		ui.timer(LOADING_SYNC_S, sync_loading)

	build_page(
		container,
		title=collection.title,
		subtitle="Server-side paging" if controller.fetch_mode is FetchMode.SERVER_PAGED else "Loaded once, filtered locally",
		toolbar=build_toolbar,
		content=build_content,
	)

	log.info(f"[render] - page_built - fetch_mode={controller.fetch_mode.value} page_size={controller.query_state().page_size}")
	ui.timer(0.01, controller.refresh, once=True)
