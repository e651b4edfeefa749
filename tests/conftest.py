"""Root test configuration for the enquiry gateway.

Every test runs with no config file in reach and none of the gateway's
environment overrides set, so a developer's own ``~/.fsenquiry/config.yaml``
or exported ``CSRF_TOKEN`` never leaks into results. Tests that need a
config write one to ``tmp_path`` or set the variables themselves.
"""

from __future__ import annotations

import pytest

_GATEWAY_ENV_VARS = (
    "FSENQUIRY_CONFIG",
    "FSENQUIRY_PORT",
    "PORT",
    "ALLOWED_ORIGIN",
    "CLIENT_IP_HEADER",
    "UPSTREAM_URL",
    "CSRF_TOKEN",
    "UPSTREAM_TIMEOUT_SECONDS",
    "RATE_LIMIT_REQUESTS",
    "RATE_LIMIT_WINDOW_SECONDS",
    "RATE_LIMIT_DAILY_MAX",
    "FSENQUIRY_GATEWAY_URL",
    "FSENQUIRY_STATE_DIR",
)


@pytest.fixture(autouse=True)
def isolate_gateway_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear env overrides and hide the default config search paths."""
    for name in _GATEWAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("fsenquiry.config.DEFAULT_CONFIG_PATHS", [])
