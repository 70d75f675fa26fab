from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Form, Request, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse
from dotenv import load_dotenv

from app.config import ERROR_MESSAGES, settings
from app.infrastructure.health import HealthChecker
from app.infrastructure.validation import RequestValidator
from app.obs.logger import log_event, log_error
from app.obs.metrics import get_metrics_snapshot
from app.obs.middleware import ObservabilityMiddleware
from app.sms_handler import SmsHandler, build_handler
from app.utils.twilio import format_phone_number, validate_twilio_signature

load_dotenv()

SERVICE = "Buddi SMS Bot"
VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(api: FastAPI):
    # Startup
    handler = build_handler()
    handler.store.start()
    api.state.bot = handler
    log_event("startup", service=SERVICE, env=settings.APP_ENV, stats=handler.store.stats())

    yield

    # Shutdown
    await handler.store.stop()
    log_event("shutdown", service=SERVICE)


api = FastAPI(title=SERVICE, version=VERSION, lifespan=lifespan)


def _bot(request: Request) -> SmsHandler:
    return request.app.state.bot


@api.get("/")
async def root():
    endpoints = {"webhook": "POST /webhook/sms", "health": "GET /health", "metrics": "GET /metrics"}
    if settings.APP_ENV == "dev":
        endpoints["test"] = "POST /test"
    return {"message": f"{SERVICE} is running! 🤖", "version": VERSION, "endpoints": endpoints}


@api.get("/health")
async def health(request: Request):
    bot = _bot(request)
    try:
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "services": {
                "twilio": bot.transport.is_configured() if hasattr(bot.transport, "is_configured") else True,
                "openai": bool(settings.OPENAI_API_KEY),
                "memoryStore": True,
            },
            "stats": {**bot.store.stats(), "groupStats": bot.engine.group_stats()},
        }
    except Exception as e:
        log_error("Health", e)
        return JSONResponse(
            {"status": "unhealthy", "error": str(e), "timestamp": datetime.now().isoformat()},
            status_code=500,
        )


@api.get("/health/detailed")
async def detailed_health(request: Request):
    bot = _bot(request)
    checker = HealthChecker()
    checker.register_check("sweep", lambda: bot.store.running)
    checker.register_check("memory_store", lambda: isinstance(bot.store.stats(), dict))
    results = await checker.run_checks()
    status_code = 200 if results["status"] == "healthy" else 503
    return JSONResponse(results, status_code=status_code)


@api.get("/metrics")
async def metrics(request: Request):
    bot = _bot(request)
    snapshot = get_metrics_snapshot()
    snapshot.update({
        "store": bot.store.stats(),
        "cache": bot.cache.get_cache_stats(),
    })
    return snapshot


@api.post("/webhook/sms")
async def sms_webhook(
    request: Request,
    Body: str | None = Form(None),
    From: str | None = Form(None),
    MessageSid: str | None = Form(None),
):
    if settings.VALIDATE_TWILIO_SIGNATURE:
        form = await request.form()
        signature = request.headers.get("x-twilio-signature")
        if not validate_twilio_signature(str(request.url), {k: str(v) for k, v in form.items()}, signature):
            log_error("SmsWebhook", "Invalid webhook signature")
            return PlainTextResponse("Unauthorized", status_code=403)

    valid, error = RequestValidator.validate_sms_message({"Body": Body, "From": From})
    if not valid:
        log_error("SmsWebhook", error)
        return PlainTextResponse("Bad Request", status_code=400)

    return await _process(request, From, Body, MessageSid)


@api.post("/test")
async def test_endpoint(request: Request):
    """Run the webhook pipeline without a Twilio signature (dev only)."""
    if settings.APP_ENV != "dev":
        raise HTTPException(status_code=404, detail="Not found")
    data = await request.json()
    valid, error = RequestValidator.validate_test_message(data)
    if not valid:
        return JSONResponse({"error": error}, status_code=400)
    return await _process(request, data["phoneNumber"], data["message"], None)


async def _process(request: Request, from_number: str, body: str, message_sid):
    bot = _bot(request)
    try:
        status, text = await bot.handle(from_number, body, message_sid)
    except Exception as e:
        log_error("SmsWebhook", e)
        formatted = format_phone_number(from_number)
        if formatted:
            await bot.notify(formatted, ERROR_MESSAGES["API_FAILURE"])
        status, text = 500, "Internal server error"
    return PlainTextResponse(text, status_code=status)


# Apply middleware
app = ObservabilityMiddleware(api)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.APP_ENV == "dev",
        log_level="info"
    )
