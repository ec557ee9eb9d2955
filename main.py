import os

from nicegui import ui

from layout.context import PageContext
from layout.header import build_header
from layout.drawer import build_drawer
from pages.collection_page import render as render_collection
from pages.login_notice import register_login_notice_page

from services.admin_api import ApiSession
from services.app_config import get_app_config, resolve_access_token
from services.collections import COLLECTIONS
from services.logging_setup import setup_logging
from loguru import logger


# ------------------------------------------------------------------
# GLOBAL (PROCESS LIFETIME)
# ------------------------------------------------------------------

setup_logging(app_name="admin_console")
logger.info("Starting NiceGUI")

APP_CONFIG = get_app_config()
if not resolve_access_token(APP_CONFIG):
	logger.warning("[main] - no_access_token - protected collections will redirect to the login notice")


# ------------------------------------------------------------------
# UI
# ------------------------------------------------------------------

HEADER_PX = 64

# registered before "/{key}" so the literal path wins
register_login_notice_page(APP_CONFIG.ui.login_url)


@ui.page("/")
def index():
	ui.navigate.to(f"/{APP_CONFIG.ui.main_route}")


@ui.page("/{key}")
def collection_view(key: str):
	collection = COLLECTIONS.get(key)
	if collection is None:
		logger.warning(f"[collection_view] - unknown_route - key={key}")
		with ui.card().classes("w-96 mx-auto mt-24"):
			ui.label(f"Unknown page: {key}").classes("text-lg font-semibold")
			ui.button("Back", on_click=lambda: ui.navigate.to("/")).props("flat")
		return

	cfg = get_app_config()
	ui.colors(primary="#3b82f6")
	ui.add_head_html("""
	<style>
		html, body { height: 100%; margin: 0; overflow: hidden; }
	</style>
	""")
	if cfg.ui.dark_mode:
		ui.dark_mode().enable()

	# --------- PER SESSION CONTEXT ---------
	ctx = PageContext()
	ctx.config = cfg
	ctx.session = ApiSession(access_token=resolve_access_token(cfg))
	ctx.active_key = key

	# --------- LAYOUT ---------
	build_header(ctx, collection.title)
	build_drawer(ctx)

	with ui.row().classes("w-full").style(f"height: calc(100vh - {HEADER_PX}px);"):
		with ui.column().classes("w-full h-full min-h-0 min-w-0 overflow-hidden p-4 pb-6 gap-4") as main_area:
			ctx.main_area = main_area

	render_collection(main_area, ctx, collection)


ui.run(
	title=APP_CONFIG.ui.title,
	reload=False,
	storage_secret=os.environ.get("NICEGUI_STORAGE_SECRET", "admin-console"),
)
