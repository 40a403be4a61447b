"""FastAPI application for clinic billing webhooks.

Exposes the partner invoice webhook and a liveness check. Deployed behind
API Gateway on Lambda (via Mangum) or run locally with uvicorn.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from billing.utils.logging import StructuredFormatter
from billing_api.exceptions import register_exception_handlers
from billing_api.middleware.correlation import CorrelationIdMiddleware
from billing_api.routes import webhooks_router

_handler = logging.StreamHandler()
_handler.setFormatter(StructuredFormatter("%(levelname)s %(name)s: %(message)s"))
logging.basicConfig(level=logging.INFO, handlers=[_handler])
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Clinic Billing API",
    description="Webhook endpoints that record partner-collected payments as paid invoices",
    version="0.1.0",
)

# Configure CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

app.include_router(webhooks_router, prefix="/api")


@app.get("/api/ping")
async def ping() -> dict[str, Any]:
    """Liveness check."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": "billing-api",
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
        uvicorn.run(
            "billing_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["api/src", "shared/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
