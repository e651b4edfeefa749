"""Programmatic uvicorn entry point for the enquiry gateway.

Reads host and port from the loaded config (127.0.0.1:3000 by default;
``FSENQUIRY_PORT`` or ``PORT`` override the port) and starts uvicorn with
conservative connection limits.

Usage:
    python -m fsenquiry.run
    fsenquiry                  # via pyproject.toml [project.scripts]
"""

from __future__ import annotations

import uvicorn

from fsenquiry.config import load_config

# Maximum number of concurrent connections accepted by uvicorn; HTTP 503
# beyond this.
UVICORN_LIMIT_CONCURRENCY: int = 100

UVICORN_BACKLOG: int = 50

# Low keep-alive timeout reduces the Slow Loris window.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the gateway.

    Raises:
        SystemExit: Propagated from load_config() on config errors.
    """
    config = load_config()

    uvicorn.run(
        "fsenquiry.main:app",
        host=config.proxy.host,
        port=config.proxy.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
