"""Scraping configuration loaded from the environment."""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from typing import Any

from materialprices.scraping.retailers import RETAILERS

DEFAULT_RETAILERS = ("home_depot", "lowes", "menards")


class ConfigurationError(ValueError):
    """Raised when a run cannot start because its configuration is unusable."""


@dataclass(slots=True)
class ProxyConfig:
    host: str = "brd.superproxy.io"
    port: int = 22225
    username: str | None = None
    password: str | None = None
    zone: str = "static"

    def url(self, session_id: str | None = None) -> str:
        """Proxy URL with zone credentials.

        A fresh session id makes the proxy hand out a new exit address.
        """
        user = f"{self.username}-zone-{self.zone}"
        if session_id:
            user = f"{user}-session-{session_id}"
        return f"http://{user}:{self.password}@{self.host}:{self.port}"


@dataclass(slots=True)
class ScraperSettings:
    change_threshold: float = 0.15
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    retailers: tuple[str, ...] = DEFAULT_RETAILERS
    concurrency_per_retailer: int = 4
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "ScraperSettings":
        retailers = tuple(
            item.strip() for item in os.environ.get("RETAILERS", ",".join(DEFAULT_RETAILERS)).split(",") if item.strip()
        )
        proxy = ProxyConfig(
            host=os.environ.get("PROXY_HOST", "brd.superproxy.io"),
            port=_env_number("PROXY_PORT", 22225, int),
            username=os.environ.get("PROXY_USERNAME") or None,
            password=os.environ.get("PROXY_PASSWORD") or None,
            zone=os.environ.get("PROXY_ZONE", "static"),
        )
        return cls(
            change_threshold=_env_number("CHANGE_THRESHOLD", 0.15, float),
            proxy=proxy,
            retailers=retailers,
            concurrency_per_retailer=_env_number("RETAILER_CONCURRENCY", 4, int),
            request_timeout=_env_number("REQUEST_TIMEOUT", 30.0, float),
        )

    def validate(self) -> None:
        if not self.proxy.username or not self.proxy.password:
            raise ConfigurationError("Proxy credentials are not configured (PROXY_USERNAME/PROXY_PASSWORD)")
        if not self.retailers:
            raise ConfigurationError("No retailers configured")
        unknown = sorted(set(self.retailers) - set(RETAILERS))
        if unknown:
            raise ConfigurationError(f"Unknown retailers: {', '.join(unknown)}")
        if self.change_threshold <= 0:
            raise ConfigurationError("CHANGE_THRESHOLD must be positive")
        if self.concurrency_per_retailer < 1:
            raise ConfigurationError("RETAILER_CONCURRENCY must be at least 1")


def new_session_id() -> str:
    return uuid.uuid4().hex[:12]


def _env_number(name: str, default: float, kind: type) -> Any:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return kind(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
