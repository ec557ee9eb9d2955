from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
from nicegui import ui

from services.admin_api import ApiSession
from services.app_config import AppConfig
from services.list_controller import ListController


@dataclass
class PageContext:
	# -----------------------------
	# Layout UI references
	# -----------------------------

	# Left navigation drawer (header menu button toggles it)
	drawer: Optional[ui.left_drawer] = None

	# Drawer buttons indexed by collection key, used to highlight the active screen
	nav_buttons: dict[str, ui.button] = field(default_factory=dict)

	# Container the active screen renders into
	main_area: Optional[ui.column] = None

	# -------- Backend access (per client) --------
	# Config snapshot taken when the page was built.
	config: Optional[AppConfig] = None

	# Credentials for the admin API. Passed to every endpoint explicitly.
	session: Optional[ApiSession] = None

	# -------- Active screen --------
	# Key of the collection shown in main_area (e.g. "brands").
	active_key: str = ""

	# List state owner of the active screen. Closed on disconnect.
	controller: Optional[ListController] = None

	def close(self) -> None:
		if self.controller is not None:
			self.controller.close()
			self.controller = None
