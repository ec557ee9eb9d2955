from __future__ import annotations

import logging
import os
import sys
import threading
import traceback

from loguru import logger


LOG_FORMAT = (
	"<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
	"[<level>{level:<8}</level>] | "
	"<blue>{extra[component]:<18}</blue> | "
	"<white>{name}.{function}:{line}</white> | "
	"<level>{message}</level>"
)

DEFAULT_CONSOLE_LEVEL = "INFO"
DEFAULT_FILE_LEVEL = "DEBUG"

_LEVEL_NAMES = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


def parse_level(level_value, default: str = DEFAULT_CONSOLE_LEVEL) -> str:
	"""
	Accepts an int (logging.INFO style) or a level name.
	Returns a Loguru level name, `default` when unknown.
	"""
	if isinstance(level_value, int):
		mapping = {
			logging.CRITICAL: "CRITICAL",
			logging.ERROR: "ERROR",
			logging.WARNING: "WARNING",
			logging.INFO: "INFO",
			logging.DEBUG: "DEBUG",
		}
		return mapping.get(level_value, default)

	if isinstance(level_value, str):
		val = level_value.strip().upper()
		if val in _LEVEL_NAMES:
			return val

	return default


def _install_global_exception_hooks() -> None:
	"""Uncaught exceptions (main thread and worker threads) end up in the log."""
	def _sys_hook(exc_type, exc_value, exc_tb):
		try:
			logger.opt(exception=(exc_type, exc_value, exc_tb)).critical("Uncaught exception")
		except Exception:
			traceback.print_exception(exc_type, exc_value, exc_tb, file=sys.stderr)

	def _thread_hook(args):
		thread_name = getattr(args.thread, "name", "unknown")
		try:
			logger.opt(exception=(args.exc_type, args.exc_value, args.exc_traceback)).critical(
				f"[_thread_hook] - uncaught_thread_exception - thread={thread_name}"
			)
		except Exception:
			traceback.print_exception(args.exc_type, args.exc_value, args.exc_traceback, file=sys.stderr)

	sys.excepthook = _sys_hook
	threading.excepthook = _thread_hook


def setup_logging(
	app_name: str = "admin_console",
	log_dir: str = "log",
	log_level: str | int | None = None,
	file_level: str | int | None = None,
	to_file: bool = True,
) -> None:
	"""
	Loguru sinks:
	- colored console (LOG_LEVEL, default INFO)
	- rotating file (10 MB, zip, keep 50) at LOG_FILE_LEVEL, default DEBUG
	Records without a bound `component` show "-".
	"""
	console_level = parse_level(log_level if log_level is not None else os.getenv("LOG_LEVEL", DEFAULT_CONSOLE_LEVEL))
	resolved_file_level = parse_level(
		file_level if file_level is not None else os.getenv("LOG_FILE_LEVEL", DEFAULT_FILE_LEVEL),
		default=DEFAULT_FILE_LEVEL,
	)

	handlers = [
		{
			"sink": sys.stdout,
			"format": LOG_FORMAT,
			"colorize": True,
			"level": console_level,
		},
	]

	log_path = ""
	if to_file:
		os.makedirs(log_dir, exist_ok=True)
		log_path = get_log_file_path(app_name=app_name, log_dir=log_dir)
		handlers.append(
			{
				"sink": log_path,
				"format": LOG_FORMAT,
				"rotation": "10 MB",
				"compression": "zip",
				"retention": 50,
				"colorize": False,
				"level": resolved_file_level,
				"enqueue": True,
			}
		)

	logger.remove()
	logger.configure(handlers=handlers, extra={"component": "-"})
	_install_global_exception_hooks()

	logger.info(
		f"[setup_logging] - logger_initialized - app_name={app_name} console_level={console_level} "
		f"file_level={resolved_file_level} log_path={log_path or '-'}"
	)


def get_log_file_path(app_name: str = "admin_console", log_dir: str = "log") -> str:
	return os.path.join(log_dir, f"{app_name}.log")
