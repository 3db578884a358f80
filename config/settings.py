"""
Configuration loader for the Messenger integration.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class MessengerConfig:
    application_id: str = ""
    access_token: str = ""
    app_secret: str = ""
    verify_token: str = field(default_factory=lambda: str(uuid.uuid4()))
    graph_version: str = "v2.6"
    request_timeout: float = 30.0


@dataclass
class PendingConfig:
    backdate_ms: int = 1000                 # grace window for read watermarks
    max_age_seconds: float = 0.0            # 0 disables expiry of unconfirmed sends
    sweep_interval_seconds: float = 60.0


@dataclass
class Settings:
    app_name: str = "messenger-outbound"
    debug: bool = False
    platform: str = "facebook"
    messenger: MessengerConfig = field(default_factory=MessengerConfig)
    pending: PendingConfig = field(default_factory=PendingConfig)


_settings: Optional[Settings] = None

# Environment fallbacks for credentials missing from the YAML file.
ENV_FALLBACKS = {
    "application_id": "MESSENGER_APP_ID",
    "access_token": "MESSENGER_ACCESS_TOKEN",
    "app_secret": "MESSENGER_APP_SECRET",
}


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _resolved(value: Any) -> str:
    """Empty string for placeholders whose variable is not set."""
    value = "" if value is None else str(value)
    return "" if re.fullmatch(r"\$\{\w+\}", value) else value


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "MESSENGER_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)
        settings.platform = raw.get("platform", settings.platform)

        if "messenger" in raw:
            ms = raw["messenger"] or {}
            defaults = MessengerConfig()
            settings.messenger = MessengerConfig(
                application_id=_resolved(ms.get("application_id")),
                access_token=_resolved(ms.get("access_token")),
                app_secret=_resolved(ms.get("app_secret")),
                verify_token=_resolved(ms.get("verify_token")) or defaults.verify_token,
                graph_version=ms.get("graph_version", defaults.graph_version),
                request_timeout=float(ms.get("request_timeout", defaults.request_timeout)),
            )

        if "pending" in raw:
            p = raw["pending"] or {}
            settings.pending = PendingConfig(
                backdate_ms=int(p.get("backdate_ms", 1000)),
                max_age_seconds=float(p.get("max_age_seconds", 0)),
                sweep_interval_seconds=float(p.get("sweep_interval_seconds", 60)),
            )

    for attr, env_name in ENV_FALLBACKS.items():
        if not getattr(settings.messenger, attr) and os.environ.get(env_name):
            setattr(settings.messenger, attr, os.environ[env_name])

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
