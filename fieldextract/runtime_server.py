"""Runtime launcher for the batch field extraction service."""

from __future__ import annotations

import multiprocessing
import os

import uvicorn


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
    # Each worker holds its own template cache; keep the pool small.
    return max(1, min(cpu_total, 4))


def main() -> None:
    workers = _worker_count()
    port = int(os.getenv("PORT", "8080"))
    app_path = os.getenv("FASTAPI_APP", "fieldextract.main:create_app")
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
