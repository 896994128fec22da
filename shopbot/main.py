"""FastAPI application entry point for the Shopbot commerce engine."""

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any

from fastapi import FastAPI

from shopbot.actions import ActionRegistry, ActionServices, default_actions
from shopbot.api.conversations import create_conversations_router, create_maintenance_router
from shopbot.cart.service import CartService
from shopbot.cart.store import SQLiteCartStore
from shopbot.conversation.engine import ConversationEngine
from shopbot.conversation.errors import TransitionError
from shopbot.conversation.guards import GuardRegistry
from shopbot.conversation.store import SQLiteConversationStore
from shopbot.conversation.sweeper import TimeoutSweeper
from shopbot.conversation.transitions import TransitionTable, default_rules
from shopbot.core.config import get_settings
from shopbot.core.errors import transition_error_handler, unhandled_exception_handler
from shopbot.core.logging import configure_logging, request_id_middleware
from shopbot.core.metrics import MetricsCollector
from shopbot.services.catalog import InMemoryCatalog
from shopbot.services.orders import InMemoryOrderGateway, StaticPaymentGateway
from shopbot.services.scheduler import InMemoryScheduler

settings = get_settings()
logger = logging.getLogger("shopbot.app")

conversation_store = SQLiteConversationStore(settings.sqlite_path)
cart_store = SQLiteCartStore(settings.sqlite_path)
catalog = InMemoryCatalog.from_json(settings.catalog_path)
cart_service = CartService(cart_store, catalog, expiry_hours=settings.cart_expiry_hours)
scheduler = InMemoryScheduler()
orders = InMemoryOrderGateway()
payments = StaticPaymentGateway(settings.payment_link_base_url, settings.currency)
metrics = MetricsCollector()

services = ActionServices(
    carts=cart_service,
    catalog=catalog,
    scheduler=scheduler,
    orders=orders,
    payments=payments,
    settings=settings,
)
engine = ConversationEngine(
    store=conversation_store,
    table=TransitionTable(default_rules()),
    guards=GuardRegistry(catalog, unknown_policy=settings.unknown_guard_policy),
    actions=ActionRegistry(default_actions()),
    services=services,
    settings=settings,
    observers=[metrics],
)
sweeper = TimeoutSweeper(engine, conversation_store, settings)

app = FastAPI(title=settings.app_name, version="0.1.0", docs_url="/docs")

app.middleware("http")(request_id_middleware)

app.include_router(create_conversations_router(engine, cart_service, metrics))
app.include_router(create_maintenance_router(sweeper, cart_service))


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Return basic service status for monitoring."""

    return {"status": "ok"}


@app.get("/ready", tags=["health"])
async def readiness_probe() -> dict[str, Any]:
    """Readiness endpoint that verifies critical dependencies.

    Checks:
    - Conversations SQLite DB reachable and has the expected tables.
    - Catalog loaded with at least one product.
    """

    components: dict[str, dict[str, Any]] = {}

    db_ok = False
    db_error: str | None = None
    try:
        db_path = Path(settings.sqlite_path)
        with sqlite3.connect(db_path) as conn:
            rows = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name IN ('conversations','carts')"
            ).fetchall()
            db_ok = len(rows) == 2
    except Exception as exc:  # noqa: BLE001
        db_error = str(exc)
    components["conversations_db"] = {
        "path": str(settings.sqlite_path),
        "ok": db_ok,
        **({"error": db_error} if db_error else {}),
    }

    products = len(catalog)
    components["catalog"] = {
        "path": str(settings.catalog_path),
        "products": products,
        "ok": products > 0,
    }

    if db_ok and products:
        overall = "ok"
    else:
        overall = "degraded" if db_ok else "fail"

    return {
        "status": overall,
        "environment": settings.environment,
        "components": components,
    }


@app.on_event("startup")
async def configure_app_logging() -> None:
    level = configure_logging(settings.log_level)
    logger.info("Logging configured at %s level for %s environment", logging.getLevelName(level), settings.environment)


@app.on_event("startup")
async def start_timeout_sweeper() -> None:
    if settings.sweep_interval_seconds <= 0:
        logger.info("Background timeout sweep disabled")
        return

    stop = asyncio.Event()
    app.state.sweeper_stop = stop
    app.state.sweeper_task = asyncio.create_task(sweeper.run_periodically(settings.sweep_interval_seconds, stop))


@app.on_event("shutdown")
async def stop_timeout_sweeper() -> None:
    stop = getattr(app.state, "sweeper_stop", None)
    task = getattr(app.state, "sweeper_task", None)
    if stop is None or task is None:
        return
    stop.set()
    await task


app.add_exception_handler(TransitionError, transition_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.get("/metrics", tags=["metrics"])
async def metrics_endpoint() -> dict:
    snapshot = metrics.snapshot()
    return {
        "total_transitions": snapshot.total_transitions,
        "events": snapshot.events,
        "target_states": snapshot.target_states,
        "failures": snapshot.failures,
        "timeouts": snapshot.timeouts,
        "scheduled_jobs": len(scheduler.jobs),
    }
