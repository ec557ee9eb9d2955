from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, asdict
from typing import Any

from loguru import logger

# --------------------------------------------------------------------------------------
# Config location
# --------------------------------------------------------------------------------------

# If you set APP_CONFIG_PATH, it overrides the default location (useful for production/testing).
ENV_CONFIG_PATH = "APP_CONFIG_PATH"
ENV_API_TOKEN = "ADMIN_API_TOKEN"

DEFAULT_CONFIG_PATH = "config/admin_console.json"


def get_config_path() -> str:
    """
    Canonical config path resolver.

    Priority:
      1) APP_CONFIG_PATH env override (absolute or relative)
      2) config/admin_console.json
    """
    return os.environ.get(ENV_CONFIG_PATH) or DEFAULT_CONFIG_PATH


# ------------------------------------------------------------------ Config models

@dataclass
class ApiConfig:
    base_url: str = "http://localhost:8889/api/v1"
    timeout_s: float = 10.0
    verify_ssl: bool = True
    # file value only; ADMIN_API_TOKEN is applied by resolve_access_token()
    access_token: str = ""


@dataclass
class ListsConfig:
    default_page_size: int = 10
    page_size_options: list[int] = field(default_factory=lambda: [10, 20, 50])
    search_debounce_ms: int = 300
    bulk_fetch_limit: int = 1000


@dataclass
class CollectionConfig:
    # "server_paged" | "client_cached"; empty keeps the collection default
    fetch_mode: str = ""
    page_size: int = 0


@dataclass
class UiConfig:
    title: str = "Admin Console"
    login_url: str = "/login"
    dark_mode: bool = False
    main_route: str = "brands"


@dataclass
class AppConfig:
    api: ApiConfig = field(default_factory=ApiConfig)
    lists: ListsConfig = field(default_factory=ListsConfig)
    collections: dict[str, CollectionConfig] = field(default_factory=dict)
    ui: UiConfig = field(default_factory=UiConfig)


_APP_CONFIG: AppConfig | None = None


def clear_app_config_cache() -> None:
    global _APP_CONFIG
    _APP_CONFIG = None


def get_app_config() -> AppConfig:
    global _APP_CONFIG
    if _APP_CONFIG is None:
        _APP_CONFIG = load_app_config()
    return _APP_CONFIG


def load_app_config(path: str | None = None) -> AppConfig:
    config_path = path or get_config_path()
    log = logger.bind(component="AppConfig", path=config_path)

    if not os.path.exists(config_path):
        log.warning("Config not found. Writing defaults.")
        cfg = AppConfig()
        save_app_config(cfg, config_path)
        return cfg

    with open(config_path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        log.warning("Config root is not an object. Using defaults.")
        raw = {}
    return _from_dict(raw)


def save_app_config(cfg: AppConfig, path: str | None = None) -> None:
    global _APP_CONFIG
    config_path = path or get_config_path()
    folder = os.path.dirname(config_path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(_to_dict(cfg), f, indent=2, sort_keys=True)

    # Keep cache in sync
    _APP_CONFIG = cfg


def _to_dict(cfg: AppConfig) -> dict[str, Any]:
    return asdict(cfg)


def resolve_access_token(cfg: AppConfig) -> str:
    """ADMIN_API_TOKEN first, then api.access_token. Never written back into cfg."""
    return os.environ.get(ENV_API_TOKEN) or cfg.api.access_token


# ------------------------------------------------------------------ Parsing

def _known(cls, data: Any) -> dict[str, Any]:
    """Drop keys the dataclass does not know (old/foreign config files)."""
    if not isinstance(data, dict):
        return {}
    names = set(cls.__dataclass_fields__.keys())
    return {k: v for k, v in data.items() if k in names}


def _from_dict(data: dict[str, Any]) -> AppConfig:
    api = ApiConfig(**_known(ApiConfig, data.get("api")))
    lists = ListsConfig(**_known(ListsConfig, data.get("lists")))

    if lists.default_page_size <= 0:
        lists.default_page_size = ListsConfig().default_page_size
    options = [int(v) for v in lists.page_size_options if int(v) > 0]
    if lists.default_page_size not in options:
        options.append(lists.default_page_size)
    lists.page_size_options = sorted(set(options))

    collections: dict[str, CollectionConfig] = {}
    raw_collections = data.get("collections")
    if isinstance(raw_collections, dict):
        for key, entry in raw_collections.items():
            collections[str(key)] = CollectionConfig(**_known(CollectionConfig, entry))

    ui_cfg = UiConfig(**_known(UiConfig, data.get("ui")))

    return AppConfig(api=api, lists=lists, collections=collections, ui=ui_cfg)


# ------------------------------------------------------------------ Helpers

def get_collection_config(cfg: AppConfig, key: str) -> CollectionConfig:
    entry = cfg.collections.get(key)
    return entry if isinstance(entry, CollectionConfig) else CollectionConfig()
