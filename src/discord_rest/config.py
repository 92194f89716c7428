from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv


@dataclass(slots=True)
class RuntimeConfig:
    log_level: str = "INFO"


@dataclass(slots=True)
class HttpConfig:
    base_url: str = "https://discord.com/api/v10"
    timeout_sec: float = 10.0
    max_in_flight: int = 8
    user_agent: str = "DiscordBot (discord-rest, 0.1.0)"


@dataclass(slots=True)
class RateLimitConfig:
    default_remaining: int = 1
    default_limit: int = 1
    default_retry_after_sec: float = 1.0
    retry_after_in_ms: bool = False
    max_retry_after_sec: float | None = None

    def __post_init__(self) -> None:
        if self.default_limit < 1:
            raise ValueError("rate_limits.default_limit must be >= 1")
        if not 0 <= self.default_remaining <= self.default_limit:
            raise ValueError("rate_limits.default_remaining must be within [0, default_limit]")
        if self.default_retry_after_sec < 0:
            raise ValueError("rate_limits.default_retry_after_sec must be >= 0")
        if self.max_retry_after_sec is not None and self.max_retry_after_sec <= 0:
            raise ValueError("rate_limits.max_retry_after_sec must be > 0")


@dataclass(slots=True)
class ClientConfig:
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    token: str = ""
    oauth_authorize_url: str = "https://discord.com/oauth2/authorize"
    raw: dict[str, Any] = field(default_factory=dict)


def _deep_get(d: dict[str, Any], path: str, default: Any = None) -> Any:
    cur: Any = d
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


def load_config(config_path: str = "config.yaml") -> ClientConfig:
    load_dotenv()
    data = yaml.safe_load(Path(config_path).read_text()) or {}

    runtime = RuntimeConfig(log_level=os.getenv("LOG_LEVEL", str(_deep_get(data, "runtime.log_level", "INFO"))))
    http_defaults = HttpConfig()
    http = HttpConfig(
        base_url=os.getenv("DISCORD_API_URL", str(_deep_get(data, "http.base_url", http_defaults.base_url))),
        timeout_sec=float(_deep_get(data, "http.timeout_sec", http_defaults.timeout_sec)),
        max_in_flight=int(_deep_get(data, "http.max_in_flight", http_defaults.max_in_flight)),
        user_agent=str(_deep_get(data, "http.user_agent", http_defaults.user_agent)),
    )
    raw_max_retry = _deep_get(data, "rate_limits.max_retry_after_sec")
    rate_limits = RateLimitConfig(
        default_remaining=int(_deep_get(data, "rate_limits.default_remaining", 1)),
        default_limit=int(_deep_get(data, "rate_limits.default_limit", 1)),
        default_retry_after_sec=float(_deep_get(data, "rate_limits.default_retry_after_sec", 1.0)),
        retry_after_in_ms=str(_deep_get(data, "rate_limits.retry_after_in_ms", False)).lower() == "true",
        max_retry_after_sec=None if raw_max_retry is None else float(raw_max_retry),
    )
    token = os.getenv("DISCORD_TOKEN", "")
    if not token:
        logging.getLogger("config").warning("DISCORD_TOKEN is not set; only unauthenticated routes will work")

    return ClientConfig(
        runtime=runtime,
        http=http,
        rate_limits=rate_limits,
        token=token,
        oauth_authorize_url=str(_deep_get(data, "oauth.authorize_url", "https://discord.com/oauth2/authorize")),
        raw=data,
    )
