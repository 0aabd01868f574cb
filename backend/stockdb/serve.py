# backend/stockdb/serve.py
"""
Launch the API under uvicorn.

TLS and authentication are terminated by the gateway in front of the
engine, so only bind address, worker count and logging are configurable.
"""

import os

import uvicorn

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str) -> bool:
    return os.getenv(name, "false").strip().lower() in _TRUTHY


def main() -> None:
    reload_enabled = _flag("RELOAD")
    uvicorn.run(
        "stockdb.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=reload_enabled,
        # uvicorn ignores workers when reloading.
        workers=None if reload_enabled else int(os.getenv("WEB_CONCURRENCY", "1")),
        log_level=os.getenv("LOG_LEVEL", "info"),
        proxy_headers=True,
        forwarded_allow_ips=os.getenv("FORWARDED_ALLOW_IPS", "127.0.0.1"),
    )


if __name__ == "__main__":
    main()
