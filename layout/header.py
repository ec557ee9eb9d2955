from nicegui import ui

from layout.context import PageContext
from services.app_config import get_app_config, save_app_config
from loguru import logger


def build_header(ctx: PageContext, title: str) -> ui.header:
    cfg = ctx.config or get_app_config()
    is_dark = bool(cfg.ui.dark_mode)
    header = ui.header().classes("h-16 w-full border-b")

    with header:
        with ui.row().classes("h-full items-center w-full px-4 gap-2"):
            ui.button(icon="menu", on_click=lambda: ctx.drawer.toggle() if ctx.drawer else None).props(
                "flat round dense color=white"
            ).tooltip("Toggle navigation menu")

            ui.icon("admin_panel_settings").classes("text-2xl")
            ui.label(cfg.ui.title).classes("text-lg font-semibold")
            ui.label(f"/ {title}").classes("text-sm opacity-80")
            ui.space()

            def on_toggle_theme() -> None:
                cfg_local = get_app_config()
                cfg_local.ui.dark_mode = not bool(cfg_local.ui.dark_mode)
                save_app_config(cfg_local)
                logger.info(f"[on_toggle_theme] - theme_changed - dark_mode={cfg_local.ui.dark_mode}")
                ui.run_javascript("location.reload()")

            ui.button(
                icon="dark_mode" if is_dark else "light_mode",
                on_click=on_toggle_theme,
            ).props("flat round dense color=white").tooltip("Toggle dark mode")

    return header
