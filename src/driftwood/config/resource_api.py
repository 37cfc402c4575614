"""Resource API (HTTP provider) configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .env import optional_env_int, require_env_vars
from .http_resilience import HttpRetryPolicy, RateLimit, ResilienceConfig


@dataclass(frozen=True, slots=True)
class ResourceApiConfig:
    resilience: ResilienceConfig


def get_resource_api_config() -> ResourceApiConfig:
    values = require_env_vars(("DRIFTWOOD_API_URL",))
    headers = {"Accept": "application/json"}
    token = os.getenv("DRIFTWOOD_API_TOKEN")
    if token and token.strip():
        headers["Authorization"] = f"Bearer {token.strip()}"

    calls_per_second = optional_env_int("DRIFTWOOD_API_RATE_LIMIT", 10, minimum=0)
    resilience = ResilienceConfig(
        name="resource-api",
        base_url=values["DRIFTWOOD_API_URL"].rstrip("/"),
        ratelimit=RateLimit(max_calls=calls_per_second, per_seconds=1.0)
        if calls_per_second
        else None,
        retry=HttpRetryPolicy(total=2),
        default_headers=headers,
    )
    return ResourceApiConfig(resilience=resilience)
