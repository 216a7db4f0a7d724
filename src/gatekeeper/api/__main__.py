"""
gatekeeper.api.__main__

`python -m gatekeeper.api` (or the `gatekeeper-api` script): serve the gate with uvicorn.
"""

from __future__ import annotations

import uvicorn

from gatekeeper.api.app import create_app
from gatekeeper.settings import get_settings


def main() -> None:
    settings = get_settings()
    if settings.env == "prod" and settings.store_backend == "memory":
        # Quota and lock state would be per-process; refuse rather than silently under-enforce.
        raise SystemExit("GATE_STORE_BACKEND=redis is required in prod")

    uvicorn.run(
        create_app(settings=settings),
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,  # structlog owns log formatting
        access_log=False,  # RequestContextMiddleware emits http.request
    )


if __name__ == "__main__":
    main()
