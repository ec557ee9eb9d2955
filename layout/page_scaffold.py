from __future__ import annotations

from typing import Callable
from nicegui import ui


ContentBuilder = Callable[[ui.element], None]
ToolbarBuilder = Callable[[ui.element], None]


def build_page(
	container: ui.element,
	*,
	title: str | None = None,
	subtitle: str | None = None,
	toolbar: ToolbarBuilder | None = None,
	content: ContentBuilder,
) -> None:
	"""
	Standard screen layout:

	- title row with optional toolbar buttons on the right (does not scroll)
	- content area fills the remaining height and scrolls on its own
	"""
	with container:
		with ui.column().classes("w-full h-full min-h-0 min-w-0 gap-3"):
			with ui.row().classes("w-full items-center shrink-0"):
				with ui.column().classes("gap-0"):
					if title:
						ui.label(title).classes("text-2xl font-bold")
					if subtitle:
						ui.label(subtitle).classes("text-sm text-gray-500")
				ui.space()
				if toolbar is not None:
					with ui.row().classes("items-center gap-2") as toolbar_row:
						toolbar(toolbar_row)

			with ui.column().classes("w-full flex-1 min-h-0 min-w-0 overflow-auto") as content_area:
				content(content_area)
