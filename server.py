"""
HTTP wrapper and composition root for the scheduling engine.

Builds the storage adapter, the BookingService and the LifecycleScheduler,
and ties the scheduler to the aiohttp application lifecycle: it starts on
startup and stops on cleanup. Authentication is handled upstream; caller
identity arrives in the request body.
"""

import json
from typing import Optional

from aiohttp import web
from aiohttp.web import Request, Response
from pydantic import ValidationError as PydanticValidationError

from booking.service import BookingService
from config import settings
from db import SchedulingStore, create_store
from models.availability import AvailabilityUpdate
from scheduler.lifecycle import LifecycleScheduler
from utils.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__, log_file="server.log")

MAX_REQUEST_BODY_SIZE = 64 * 1024

STORE_KEY = web.AppKey("store", SchedulingStore)
SERVICE_KEY = web.AppKey("service", BookingService)
LIFECYCLE_KEY = web.AppKey("lifecycle", LifecycleScheduler)


def _error(status: int, error: str, message: str, **extra) -> Response:
    return web.json_response(
        {"status": "error", "error": error, "message": message, **extra},
        status=status,
    )


@web.middleware
async def error_middleware(request: Request, handler):
    """Map scheduling errors onto HTTP responses."""
    try:
        return await handler(request)
    except ValidationError as e:
        return _error(400, "validation_failed", str(e))
    except PydanticValidationError as e:
        return _error(400, "validation_failed", str(e))
    except NotFoundError as e:
        return _error(404, "not_found", str(e))
    except ConflictError as e:
        return _error(409, "conflict", str(e), conflicting_ids=e.conflicting_ids)
    except InvalidTransitionError as e:
        return _error(409, "invalid_transition", str(e))
    except TransientError as e:
        logger.warning(f"Storage unavailable for {request.method} {request.path}: {e}")
        return _error(503, "storage_unavailable", "Storage temporarily unavailable, retry later")


@web.middleware
async def security_headers_middleware(request: Request, handler):
    """Add security headers to all responses."""
    response = await handler(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Cache-Control"] = "no-store"

    return response


async def _read_json(request: Request) -> dict:
    raw_body = await request.read()
    if len(raw_body) > MAX_REQUEST_BODY_SIZE:
        raise ValidationError(f"Request body exceeds maximum size of {MAX_REQUEST_BODY_SIZE} bytes")
    if not raw_body:
        raise ValidationError("Empty payload")
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"Invalid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ValidationError("JSON body must be an object")
    return payload


def _require(payload: dict, *fields: str) -> list:
    missing = [f for f in fields if not payload.get(f)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return [payload[f] for f in fields]


def _booking_response(booking, status: int = 200) -> Response:
    return web.json_response(booking.model_dump(mode="json"), status=status)


# ========== Handlers ==========


async def health_check(request: Request) -> Response:
    """Service status plus the outcome of the last lifecycle sweep."""
    lifecycle = request.app.get(LIFECYCLE_KEY)
    last = lifecycle.last_result if lifecycle else None

    return web.json_response(
        {
            "status": "ok",
            "service": "booking-scheduler",
            "environment": settings.environment,
            "storage_backend": settings.storage_backend,
            "scheduler_running": bool(lifecycle and lifecycle.running),
            "last_sweep": (
                {"transitioned": last.transitioned_count, "failed": last.failed_count}
                if last
                else None
            ),
        }
    )


async def put_availability(request: Request) -> Response:
    provider_id = request.match_info["provider_id"]
    update = AvailabilityUpdate(**await _read_json(request))
    config = await request.app[SERVICE_KEY].save_availability(provider_id, update)
    return web.json_response(config.model_dump(mode="json"))


async def get_availability(request: Request) -> Response:
    provider_id = request.match_info["provider_id"]
    config = await request.app[SERVICE_KEY].get_availability(provider_id)
    return web.json_response(config.model_dump(mode="json"))


async def get_available_slots(request: Request) -> Response:
    provider_id = request.match_info["provider_id"]
    day = request.query.get("date")
    if not day:
        raise ValidationError("Query parameter 'date' is required")

    slots = await request.app[SERVICE_KEY].get_available_slots(provider_id, day)
    return web.json_response({"provider_id": provider_id, "date": day, "slots": slots})


async def create_booking(request: Request) -> Response:
    payload = await _read_json(request)
    provider_id, client_id, day, slot = _require(payload, "provider_id", "client_id", "date", "slot")

    booking = await request.app[SERVICE_KEY].create_booking(
        provider_id, client_id, day, slot, notes=payload.get("notes")
    )
    return _booking_response(booking, status=201)


async def get_booking(request: Request) -> Response:
    booking = await request.app[SERVICE_KEY].get_booking(request.match_info["booking_id"])
    return _booking_response(booking)


async def confirm_booking(request: Request) -> Response:
    booking = await request.app[SERVICE_KEY].confirm_booking(request.match_info["booking_id"])
    return _booking_response(booking)


async def cancel_booking(request: Request) -> Response:
    booking = await request.app[SERVICE_KEY].cancel_booking(request.match_info["booking_id"])
    return _booking_response(booking)


async def reschedule_booking(request: Request) -> Response:
    day, slot = _require(await _read_json(request), "date", "slot")
    booking = await request.app[SERVICE_KEY].reschedule_booking(
        request.match_info["booking_id"], day, slot
    )
    return _booking_response(booking)


# ========== Lifecycle hooks ==========


async def on_startup(app: web.Application) -> None:
    """Build missing components and start the lifecycle scheduler."""
    if SERVICE_KEY not in app:
        store = await create_store(settings)
        app[STORE_KEY] = store
        app[SERVICE_KEY] = BookingService(
            store,
            settings.tz,
            lead_minutes=settings.booking_lead_minutes,
            default_duration_minutes=settings.default_session_minutes,
        )
        if settings.lifecycle_scheduler_enabled:
            app[LIFECYCLE_KEY] = LifecycleScheduler(
                store, interval_seconds=settings.lifecycle_sweep_interval_seconds
            )

    lifecycle = app.get(LIFECYCLE_KEY)
    if lifecycle:
        lifecycle.start()

    logger.info(f"Booking scheduler service started (storage={settings.storage_backend})")


async def on_cleanup(app: web.Application) -> None:
    """Stop the scheduler, then release storage."""
    lifecycle = app.get(LIFECYCLE_KEY)
    if lifecycle:
        lifecycle.stop()

    store = app.get(STORE_KEY)
    if store:
        await store.close()

    logger.info("Booking scheduler service stopped")


def create_app(
    service: Optional[BookingService] = None,
    lifecycle: Optional[LifecycleScheduler] = None,
) -> web.Application:
    """
    Create aiohttp application with middleware, routes and lifecycle hooks.

    Args:
        service: Prebuilt BookingService; built from settings on startup if None
        lifecycle: Scheduler to start/stop with the app

    Returns:
        Configured web application
    """
    app = web.Application(middlewares=[security_headers_middleware, error_middleware])

    if service is not None:
        app[SERVICE_KEY] = service
        app[STORE_KEY] = service.store
    if lifecycle is not None:
        app[LIFECYCLE_KEY] = lifecycle

    app.router.add_get("/health", health_check)
    app.router.add_put("/providers/{provider_id}/availability", put_availability)
    app.router.add_get("/providers/{provider_id}/availability", get_availability)
    app.router.add_get("/providers/{provider_id}/slots", get_available_slots)
    app.router.add_post("/bookings", create_booking)
    app.router.add_get("/bookings/{booking_id}", get_booking)
    app.router.add_post("/bookings/{booking_id}/confirm", confirm_booking)
    app.router.add_post("/bookings/{booking_id}/cancel", cancel_booking)
    app.router.add_post("/bookings/{booking_id}/reschedule", reschedule_booking)

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    return app


def main() -> None:
    settings.validate_all_required()
    logger.info(
        f"Starting booking scheduler ({settings.environment}) on {settings.host}:{settings.port}"
    )
    web.run_app(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
