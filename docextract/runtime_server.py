"""Runtime launcher for the extraction service with adaptive worker tuning."""

from __future__ import annotations

import multiprocessing
import os

import uvicorn

DEFAULT_PORT = 3000


def _worker_count() -> int:
    explicit = os.getenv("UVICORN_WORKERS")
    if explicit:
        try:
            value = int(explicit)
            if value > 0:
                return value
        except ValueError:
            pass
    cpu_total = multiprocessing.cpu_count() or 1
    return max(1, cpu_total)


def main() -> None:
    workers = _worker_count()
    os.environ.setdefault("UVICORN_WORKERS", str(workers))
    port = int(os.getenv("PORT", str(DEFAULT_PORT)))
    app_path = os.getenv("FASTAPI_APP", "docextract.main:create_app")
    uvicorn.run(
        app_path,
        host="0.0.0.0",
        port=port,
        factory=True,
        workers=workers,
        lifespan="on",
    )


if __name__ == "__main__":  # pragma: no cover - exercised in runtime
    main()
