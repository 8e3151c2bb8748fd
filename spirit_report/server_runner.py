"""Uvicorn launcher with environment-driven concurrency controls."""

import os

import uvicorn

from spirit_report.config import _env_int, _env_optional_int


if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = _env_int("PORT", 8000, minimum=1)
    workers = _env_int("WEB_CONCURRENCY", 1, minimum=1)
    backlog = _env_int("UVICORN_BACKLOG", 2048, minimum=16)
    timeout_keep_alive = _env_int("UVICORN_TIMEOUT_KEEP_ALIVE", 5, minimum=1)
    log_level = os.getenv("UVICORN_LOG_LEVEL", "info").strip() or "info"
    limit_concurrency = _env_optional_int("UVICORN_LIMIT_CONCURRENCY")

    uvicorn.run(
        "spirit_report.main:app",
        host=host,
        port=port,
        workers=workers,
        backlog=backlog,
        timeout_keep_alive=timeout_keep_alive,
        limit_concurrency=limit_concurrency,
        log_level=log_level,
    )
