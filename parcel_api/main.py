import logging
import time
from contextlib import asynccontextmanager

import stripe
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from parcel_api.config import settings
from parcel_api.database import close_db, init_db
from parcel_api.errors import register_error_handlers
from parcel_api.logging_config import configure_logging
from parcel_api.reconciliation import PaymentWorkflow
from parcel_api.routes import get_workflow, router
from parcel_api.stripe_service import as_dict, init_stripe

logger = logging.getLogger(__name__)

SETTLEMENT_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    init_db()
    init_stripe()
    logger.info("[server] ready")
    yield
    close_db()
    logger.info("[server] stopped")


app = FastAPI(title="Parcel Delivery API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    logger.info(
        "%s %s - Status: %s - Time: %.4fs",
        request.method, request.url.path, response.status_code, time.time() - start_time,
    )
    return response


register_error_handlers(app)
app.include_router(router)


@app.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    workflow: PaymentWorkflow = Depends(get_workflow),
):
    payload = await request.body()

    try:
        event = stripe.Webhook.construct_event(
            payload,
            stripe_signature,
            settings.stripe_webhook_secret
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    event = as_dict(event)
    if event["type"] in SETTLEMENT_EVENTS:
        session_id = event["data"]["object"]["id"]
        result = await run_in_threadpool(workflow.settle_checkout, session_id)
        logger.info("webhook %s for session %s: paid=%s", event["type"], session_id, result.paid)

    return {"ok": True}
