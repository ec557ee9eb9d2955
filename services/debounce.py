from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger


AsyncFn = Callable[[], Awaitable[None]]


class Debouncer:
	"""
	Runs the most recent scheduled coroutine after `delay_s` of quiet.

	- schedule(): cancels a pending (not yet fired) call and starts a new window
	- once the window elapsed the call is detached; later schedules do not cancel it
	- cancel(): drops the pending call, if any
	"""

	def __init__(self, delay_s: float, name: str = "debounce") -> None:
		self.delay_s = max(0.0, float(delay_s))
		self._name = name
		self._task: Optional[asyncio.Task] = None
		self._log = logger.bind(component="Debouncer", name=name)

	@property
	def pending(self) -> bool:
		return self._task is not None and not self._task.done()

	def schedule(self, fn: AsyncFn) -> None:
		self.cancel()
		loop = asyncio.get_running_loop()
		self._task = loop.create_task(self._fire(fn), name=f"{self._name}.debounce")

	def cancel(self) -> None:
		task = self._task
		self._task = None
		if task is not None and not task.done():
			task.cancel()
			self._log.trace(f"[cancel] - pending_call_discarded - name={self._name}")

	async def _fire(self, fn: AsyncFn) -> None:
		await asyncio.sleep(self.delay_s)

		# fired: detach so a new window does not cancel the running call
		if self._task is asyncio.current_task():
			self._task = None

		try:
			await fn()
		except Exception:
			self._log.exception(f"[_fire] - debounced_call_failed - name={self._name}")
