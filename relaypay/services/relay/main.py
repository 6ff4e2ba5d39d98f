"""HTTP surface for the widget relay.

Every handler converts internal failures into generic client-facing messages;
detail goes to the server log only.
"""

import json
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path
from time import perf_counter
from uuid import uuid4

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from relaypay.common.config import CommonSettings, settings
from relaypay.common.db import Base, SessionLocal, engine
from relaypay.common.logging import configure_logging, logger, trace_id_ctx
from relaypay.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from relaypay.common.startup import log_startup_config
from relaypay.common.tracing import instrument_app, setup_tracing
from relaypay.services.relay.event_log import EventLog
from relaypay.services.relay.gateway import PaymentGateway
from relaypay.services.relay.models import CredentialRecord
from relaypay.services.relay.popup import post_message_action
from relaypay.services.relay.schemas import (
    AuthorizeRequest,
    AuthorizeResponse,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    ErrorResponse,
    FailResponse,
    ReturnResponse,
    SuccessResponse,
    UnauthorizeRequest,
)
from relaypay.services.relay.service import RelayService
from relaypay.services.relay.store import CredentialStore


def build_service(session_factory, config: CommonSettings) -> RelayService:
    """Wire store, cache, event log and Stripe handle factories from settings."""

    handle_factory = partial(
        PaymentGateway.from_secret_key,
        timeout_seconds=config.remote_timeout_seconds,
        api_version=config.stripe_api_version,
    )
    default_tenant = None
    if config.has_default_tenant:
        default_tenant = CredentialRecord(
            tenant_id=config.default_tenant_id,
            secret_key=config.default_secret_key,
            public_key=config.default_public_key,
        )
    store = CredentialStore(
        session_factory,
        handle_factory,
        default_tenant=default_tenant,
        event_log=EventLog(config.event_log_max_entries),
    )
    platform_key = config.stripe_platform_secret_key or config.default_secret_key
    platform_gateway_factory = partial(handle_factory, platform_key) if platform_key else None
    return RelayService(store, config.public_base_url, platform_gateway_factory)


configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "DATABASE_DSN", "PUBLIC_BASE_URL", "DEFAULT_TENANT_ID", "STRIPE_PLATFORM_SECRET_KEY"],
)
service = build_service(SessionLocal, settings)
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def get_service() -> RelayService:
    return service


def require_admin(x_api_key: str | None = Header(default=None)) -> None:
    """Guard the diagnostic endpoints when `ADMIN_API_KEY` is configured."""

    if settings.admin_api_key and x_api_key != settings.admin_api_key:
        raise HTTPException(status_code=401, detail="invalid API key")


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Create the credential table and seed the default tenant."""

    Base.metadata.create_all(engine)
    service.store.seed_default()
    yield


app = FastAPI(title="RelayPay Widget Relay", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_origin_regex=settings.cors_origin_regex or None,
    allow_methods=["*"],
    allow_headers=["*"],
)
instrument_app(app)

# Widget-facing routes answer malformed input with their usual generic failure body.
GENERIC_VALIDATION_ERRORS = {
    "/create-checkout-session": ErrorResponse(error="Failed to create checkout session"),
    "/session-status": ErrorResponse(error="Failed to get session status"),
    "/authorize": FailResponse(reason="Authorization failed"),
    "/unauthorize": FailResponse(reason="Unauthorization failed"),
}


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    body = GENERIC_VALIDATION_ERRORS.get(request.url.path)
    if body is None:
        return await request_validation_exception_handler(request, exc)
    logger.warning("invalid request path=%s errors=%s", request.url.path, exc.errors())
    return JSONResponse(status_code=500, content=body.model_dump())


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency, and tag logs with a trace id."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def render_status(request: Request, status: str, text: str, action: str, status_code: int = 200) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "status.html",
        {"status": status, "text": text, "action": action},
        status_code=status_code,
    )


@app.post(
    "/create-checkout-session",
    response_model=CheckoutSessionResponse,
    responses={500: {"model": ErrorResponse}},
)
def create_checkout_session(req: CheckoutSessionRequest, relay: RelayService = Depends(get_service)):
    """Create a checkout session for the tenant named by `client_id`."""

    try:
        return relay.create_checkout_session(req)
    except Exception:
        logger.exception("checkout session creation failed domain=%s", req.domain)
        return JSONResponse(status_code=500, content={"error": "Failed to create checkout session"})


@app.get("/return", response_model=ReturnResponse)
def payment_return(session_id: str | None = None):
    """Landing point for Stripe's `return_url`."""

    return ReturnResponse(sessionId=session_id)


@app.get("/session-status", responses={500: {"model": ErrorResponse}})
def session_status(
    session_id: str,
    client_id: str | None = None,
    relay: RelayService = Depends(get_service),
):
    """Status and payment status of a session, plus the last payment error if any."""

    try:
        status = relay.session_status(client_id, session_id)
    except Exception:
        logger.exception("session status lookup failed session_id=%s", session_id)
        return JSONResponse(status_code=500, content={"error": "Failed to get session status"})
    return status.model_dump(exclude={"error"} if status.error is None else None)


@app.post("/authorize", response_model=AuthorizeResponse, responses={500: {"model": FailResponse}})
def authorize(req: AuthorizeRequest, relay: RelayService = Depends(get_service)):
    """Link a tenant by key pair and return its generated id."""

    try:
        tenant_id = relay.authorize(req.secretKey, req.publicKey)
    except Exception:
        logger.exception("tenant authorization failed")
        return JSONResponse(status_code=500, content=FailResponse(reason="Authorization failed").model_dump())
    return AuthorizeResponse(id=tenant_id)


@app.get("/authorize", response_class=HTMLResponse)
def authorize_oauth(request: Request, code: str = "", relay: RelayService = Depends(get_service)):
    """Connect OAuth redirect target; reports the outcome to the widget popup opener."""

    target = settings.postmessage_target_origin
    try:
        linked = relay.link_oauth_account(code)
    except Exception:
        logger.exception("oauth account linking failed")
        action = post_message_action({"type": "AUTH_FAILURE", "reason": "Authorization failed"}, target_origin=target)
        return render_status(request, "fail", "Auth failed!", action)
    action = post_message_action({"type": "AUTH_SUCCESS", "payload": linked.model_dump()}, True, target)
    return render_status(request, "success", "Auth successful! Redirecting back...", action)


@app.post("/unauthorize", response_model=SuccessResponse, responses={500: {"model": FailResponse}})
def unauthorize(req: UnauthorizeRequest, relay: RelayService = Depends(get_service)):
    """Forget a tenant; unknown ids succeed."""

    try:
        result = relay.unauthorize(req.clientId)
        if result.error is not None:
            raise result.error
    except Exception:
        logger.exception("tenant unauthorization failed")
        return JSONResponse(status_code=500, content=FailResponse(reason="Unauthorization failed").model_dump())
    return SuccessResponse()


@app.get("/examine", response_class=HTMLResponse, dependencies=[Depends(require_admin)])
def examine(request: Request, relay: RelayService = Depends(get_service)):
    """Diagnostic page with every stored credential (plaintext) and the event log."""

    payload = json.dumps(relay.examine(), default=str)
    return templates.TemplateResponse(request, "examine.html", {"payload": payload})


@app.get("/flush", dependencies=[Depends(require_admin)])
def flush(relay: RelayService = Depends(get_service)):
    """Drop every tenant (re-seeding the default one) and show the result."""

    result = relay.flush()
    if result.error is not None:
        logger.warning("flush did not re-seed the default tenant reason=%s", result.error.reason)
    return RedirectResponse("/examine", status_code=303)


@app.get("/status", response_class=HTMLResponse)
def status_page(request: Request, status: str = "", text: str = ""):
    """Generic status page used as a postMessage relay target by popups."""

    action = post_message_action(
        {"type": "STATUS", "status": status, "text": text},
        target_origin=settings.postmessage_target_origin,
    )
    return render_status(request, status, text, action)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container liveness endpoint."""

    return {"ok": True}


def run() -> None:
    """Serve the relay on `PORT` (console entry point)."""

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
