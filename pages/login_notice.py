from nicegui import ui

from services.app_config import ENV_API_TOKEN, get_app_config


def register_login_notice_page(path: str = "/login") -> None:
    """Target of the Unauthorized redirect. The console has no login flow; the token comes from config."""

    @ui.page(path)
    def login_notice_view():
        cfg = get_app_config()
        with ui.card().classes("w-[460px] mx-auto mt-24 gap-3"):
            with ui.row().classes("items-center gap-2"):
                ui.icon("lock").classes("text-primary text-3xl")
                ui.label("Not authorized").classes("text-xl font-semibold")
            ui.label(
                "The admin API rejected the request. Set a valid access token in the "
                f"config file (api.access_token) or in the {ENV_API_TOKEN} environment variable, "
                "then restart the console."
            ).classes("text-sm")
            ui.label(f"API: {cfg.api.base_url}").classes("text-xs text-gray-500")
            ui.button(
                "Back",
                icon="arrow_back",
                on_click=lambda: ui.navigate.to(f"/{cfg.ui.main_route}"),
            ).props("flat")
