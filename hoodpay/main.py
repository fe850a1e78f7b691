from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from hoodpay.api import allies, stripe, stripe_connect, subscriptions, webhooks
from hoodpay.core.config import settings
from hoodpay.core.stripe_client import configure_stripe

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

configure_stripe()

app = FastAPI(title="Hoodpay Billing API", version="1.0.0")

allowed_origins = settings.get_allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Ensure CORS headers are included even on unhandled exceptions"""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {str(exc)}")

    response = JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

    origin = request.headers.get("origin")
    if origin and origin in allowed_origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"

    return response


app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(stripe.router, prefix="/stripe", tags=["stripe"])
app.include_router(stripe_connect.router, prefix="/stripe-connect", tags=["stripe-connect"])
app.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
app.include_router(allies.router, prefix="/allies", tags=["allies"])


@app.get("/")
async def root():
    return {"message": "Hoodpay Billing API", "version": "1.0.0"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
