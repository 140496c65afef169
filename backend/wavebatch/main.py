"""FastAPI application entry point."""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

from dotenv import load_dotenv

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")

# Apply the same format to Uvicorn's loggers so they also show timestamps.
for _uvicorn_logger in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    _log = logging.getLogger(_uvicorn_logger)
    _log.handlers.clear()
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S"))
    _log.addHandler(_handler)
    _log.propagate = False

import httpx  # noqa: E402
from fastapi import FastAPI, Request  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from wavebatch.config import load_settings  # noqa: E402
from wavebatch.deps import build_services  # noqa: E402
from wavebatch.registry import NotFoundError  # noqa: E402
from wavebatch.schemas.batch import ErrorResponse  # noqa: E402
from wavebatch.services.airtable import ArchiveError  # noqa: E402
from wavebatch.services.images import InputPreparationError  # noqa: E402
from wavebatch.services.reconciler import UnknownJobError  # noqa: E402
from wavebatch.services.retention import sweep_forever  # noqa: E402

logger = logging.getLogger(__name__)

# Load .env from project root (parent of backend/).
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")

_STARTED = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = load_settings()
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        services = build_services(settings, client)
        app.state.services = services
        services.supervisor.spawn(
            sweep_forever(
                services.registry,
                settings.batch_retention_seconds,
                settings.retention_sweep_interval,
            ),
            name="retention-sweeper",
        )
        logger.info("webhook base URL: %s", settings.public_base_url)
        try:
            yield
        finally:
            await services.supervisor.shutdown()


app = FastAPI(title="WaveSpeed Batch Generator", lifespan=lifespan)


# error name and status code for each domain exception surfaced to callers
_ERROR_RESPONSES: dict[type[Exception], tuple[str, int]] = {
    UnknownJobError: ("task_not_found", 404),
    NotFoundError: ("not_found", 404),
    InputPreparationError: ("input_preparation_error", 502),
    ArchiveError: ("archive_error", 502),
}


async def _domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    error, status_code = next(
        (value for exc_type, value in _ERROR_RESPONSES.items() if isinstance(exc, exc_type)),
        ("internal_error", 500),
    )
    logger.warning("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=str(exc)).model_dump(),
    )


for _exc_type in _ERROR_RESPONSES:
    app.add_exception_handler(_exc_type, _domain_exception_handler)


@app.get("/health")
async def health() -> dict[str, object]:
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "uptime": round(time.monotonic() - _STARTED, 3),
    }


# Import and register routers after app is defined to avoid circular imports.
from wavebatch.api import batch, webhooks  # noqa: E402

app.include_router(batch.router, tags=["batch"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "3000")))
