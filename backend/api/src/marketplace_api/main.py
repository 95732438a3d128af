"""FastAPI application for the marketplace booking core.

Routes:
- /api/bookings: booking lifecycle
- /api/payments: checkout sessions, payment reads and refunds
- /api/payments/webhook: Stripe webhook deliveries
"""

import logging
import os
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from marketplace.utils.logging import configure_logging
from marketplace_api.exceptions import register_exception_handlers
from marketplace_api.middleware.correlation import (
    CORRELATION_ID_HEADER,
    CorrelationIdMiddleware,
)
from marketplace_api.routes.bookings import router as bookings_router
from marketplace_api.routes.payments import router as payments_router
from marketplace_api.routes.webhooks import router as webhooks_router

configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"

app = FastAPI(
    title="Marketplace Booking API",
    description="Bookings, payments and refunds for guided tours",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.environ.get("CORS_ALLOW_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[CORRELATION_ID_HEADER],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

# Webhooks first: /payments/webhook must not be captured by /payments/{payment_id}
app.include_router(webhooks_router, prefix="/api")
app.include_router(bookings_router, prefix="/api")
app.include_router(payments_router, prefix="/api")


@app.get("/api/ping")
async def ping() -> dict[str, Any]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": "marketplace-api",
    }


# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "marketplace_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["api/src", "marketplace/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
