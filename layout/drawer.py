from nicegui import ui
from layout.context import PageContext
from services.collections import COLLECTIONS


def _render_drawer_content(ctx: PageContext, container: ui.element) -> None:
	"""Rebuild the drawer buttons; the active collection is highlighted."""
	ctx.nav_buttons.clear()
	container.clear()
	is_dark = bool(ctx.config and ctx.config.ui.dark_mode)
	inactive_color = "grey-3" if is_dark else "grey-8"

	with container:
		for key, collection in COLLECTIONS.items():
			btn = ui.button(
				collection.title,
				icon=collection.icon,
				on_click=lambda k=key: ui.navigate.to(f"/{k}"),
			).props("flat no-caps").classes("w-full justify-start px-4")
			ctx.nav_buttons[key] = btn

			if key == ctx.active_key:
				btn.props("unelevated color=primary")
			else:
				btn.props(f"color={inactive_color}")


def build_drawer(ctx: PageContext) -> ui.left_drawer:
	is_dark = bool(ctx.config and ctx.config.ui.dark_mode)
	drawer_classes = "bg-slate-900 text-gray-100" if is_dark else "bg-gray-50"
	drawer = ui.left_drawer(value=True, bordered=True).props("width=200").classes(drawer_classes)
	ctx.drawer = drawer

	with drawer:
		content = ui.column().classes("w-full gap-1")

	_render_drawer_content(ctx, content)
	return drawer
