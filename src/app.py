"""Aftersales FastAPI application.

Web server that processes return lifecycle commands synchronously via HTTP.
Every request runs inside the aftersales domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → event_processing = "sync"  (side effects fire after the UoW)
#   - "production" → event_processing = "async" (side effects fire via Engine)
import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from aftersales.domain import aftersales
from aftersales.utils.logging import add_context, clear_context, configure_logging

configure_logging()
aftersales.init()

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Aftersales API",
    description="Return, refund and replacement lifecycle",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the aftersales domain context and bind a request id for logging."""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    add_context(request_id=request_id, path=request.url.path)
    try:
        with aftersales.domain_context():
            response = await call_next(request)
    finally:
        clear_context()
    response.headers["x-request-id"] = request_id
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from aftersales.api.accounts import notification_router, user_router, wallet_router  # noqa: E402
from aftersales.api.errors import install_error_handlers  # noqa: E402
from aftersales.api.orders import order_router  # noqa: E402
from aftersales.api.policies import policy_router  # noqa: E402
from aftersales.api.returns import return_router  # noqa: E402

app.include_router(return_router)
app.include_router(order_router)
app.include_router(policy_router)
app.include_router(user_router)
app.include_router(notification_router)
app.include_router(wallet_router)
install_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": aftersales.name})
