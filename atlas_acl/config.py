"""Application configuration loading."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

import yaml

DEFAULT_ATLAS_BASE_URL = "https://cloud.mongodb.com/api/atlas/v1.0"


@dataclass(frozen=True, slots=True)
class AppSettings:
    app_env: str = "development"
    runtime_config_path: str = "runtime-config.yaml"
    log_level: str = "INFO"
    log_file: str = ""
    atlas_base_url: str = DEFAULT_ATLAS_BASE_URL
    atlas_public_key: str = ""
    atlas_private_key: str = ""
    atlas_http_timeout_seconds: float = 30.0
    atlas_items_per_page: int = 100
    create_timeout_seconds: float = 45 * 60
    delete_timeout_seconds: float = 45 * 60
    read_timeout_seconds: float = 2 * 60
    scan_timeout_seconds: float = 2 * 60
    create_initial_delay_seconds: float = 4.0
    create_min_interval_seconds: float = 2.0
    retry_min_interval_seconds: float = 0.5
    max_interval_seconds: float = 10.0

    @classmethod
    def from_yaml(cls, runtime_config_path: str = "runtime-config.yaml") -> AppSettings:
        normalized_path = runtime_config_path.strip() or "runtime-config.yaml"
        config = _load_runtime_config(normalized_path)

        app_cfg = cast(dict[str, Any], config.get("app", {}))
        logging_cfg = cast(dict[str, Any], config.get("logging", {}))
        atlas_cfg = cast(dict[str, Any], config.get("atlas", {}))
        convergence_cfg = cast(dict[str, Any], config.get("convergence", {}))

        return cls(
            app_env=str(app_cfg.get("env", "development")).lower(),
            runtime_config_path=normalized_path,
            log_level=_resolve_log_level(logging_cfg),
            log_file=str(logging_cfg.get("file", "")),
            atlas_base_url=str(atlas_cfg.get("base_url", DEFAULT_ATLAS_BASE_URL)),
            atlas_public_key=str(atlas_cfg.get("public_key", "")),
            atlas_private_key=os.environ.get("ATLAS_PRIVATE_KEY", ""),
            atlas_http_timeout_seconds=max(
                1.0,
                float(atlas_cfg.get("http_timeout_seconds", 30.0)),
            ),
            atlas_items_per_page=min(
                500,
                max(1, int(atlas_cfg.get("items_per_page", 100))),
            ),
            create_timeout_seconds=max(
                1.0,
                float(convergence_cfg.get("create_timeout_seconds", 45 * 60)),
            ),
            delete_timeout_seconds=max(
                1.0,
                float(convergence_cfg.get("delete_timeout_seconds", 45 * 60)),
            ),
            read_timeout_seconds=max(
                1.0,
                float(convergence_cfg.get("read_timeout_seconds", 2 * 60)),
            ),
            scan_timeout_seconds=max(
                1.0,
                float(convergence_cfg.get("scan_timeout_seconds", 2 * 60)),
            ),
            create_initial_delay_seconds=max(
                0.0,
                float(convergence_cfg.get("create_initial_delay_seconds", 4.0)),
            ),
            create_min_interval_seconds=max(
                0.1,
                float(convergence_cfg.get("create_min_interval_seconds", 2.0)),
            ),
            retry_min_interval_seconds=max(
                0.1,
                float(convergence_cfg.get("retry_min_interval_seconds", 0.5)),
            ),
            max_interval_seconds=max(
                1.0,
                float(convergence_cfg.get("max_interval_seconds", 10.0)),
            ),
        )

    @classmethod
    def from_env(cls, runtime_config_path: str = "runtime-config.yaml") -> AppSettings:
        return cls.from_yaml(runtime_config_path=runtime_config_path)


def _load_runtime_config(runtime_config_path: str) -> dict[str, Any]:
    path = Path(runtime_config_path)
    if not path.exists() or not path.is_file():
        return {}

    parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    if isinstance(parsed, dict):
        return parsed
    return {}


def _resolve_log_level(logging_cfg: dict[str, Any]) -> str:
    normalized_level = str(logging_cfg.get("level", "INFO")).upper()
    if normalized_level in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        return normalized_level

    raise ValueError(
        "unsupported logging.level in runtime config: "
        f"{normalized_level!r}; expected one of DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings.from_yaml(os.environ.get("ATLAS_ACL_RUNTIME_CONFIG", "runtime-config.yaml"))
