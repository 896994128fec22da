"""Pytest unit test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from shopbot.actions import ActionRegistry, ActionServices, default_actions
from shopbot.cart.service import CartService
from shopbot.cart.store import SQLiteCartStore
from shopbot.conversation.engine import ConversationEngine
from shopbot.conversation.guards import GuardRegistry
from shopbot.conversation.models import Conversation
from shopbot.conversation.store import SQLiteConversationStore
from shopbot.conversation.transitions import TransitionTable, default_rules
from shopbot.core.config import Settings
from shopbot.services.catalog import InMemoryCatalog
from shopbot.services.orders import InMemoryOrderGateway, StaticPaymentGateway
from shopbot.services.scheduler import InMemoryScheduler


class RacingStore(SQLiteConversationStore):
    """Lets another writer bump the row right before each of the next ``races`` writes."""

    races = 0

    def compare_and_swap(self, conversation_id, expected_version, conversation):
        if self.races > 0:
            self.races -= 1
            current = self.load(conversation_id)
            current.state_data["touched_by"] = "other-writer"
            super().compare_and_swap(conversation_id, current.version, current)
        return super().compare_and_swap(conversation_id, expected_version, conversation)


class FrozenClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture()
def clock():
    return FrozenClock(datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def settings(tmp_path, catalog_path):
    return Settings(
        sqlite_path=tmp_path / "shopbot.db",
        catalog_path=catalog_path,
        sweep_interval_seconds=0,
    )


@pytest.fixture()
def catalog(catalog_path):
    return InMemoryCatalog.from_json(catalog_path)


@pytest.fixture()
def conversation_store(settings):
    return SQLiteConversationStore(settings.sqlite_path)


@pytest.fixture()
def racing_store(settings):
    return RacingStore(settings.sqlite_path)


@pytest.fixture()
def cart_store(settings):
    return SQLiteCartStore(settings.sqlite_path)


@pytest.fixture()
def cart_service(cart_store, catalog, settings, clock):
    return CartService(cart_store, catalog, expiry_hours=settings.cart_expiry_hours, clock=clock)


@pytest.fixture()
def scheduler():
    return InMemoryScheduler()


@pytest.fixture()
def orders():
    return InMemoryOrderGateway()


@pytest.fixture()
def services(cart_service, catalog, scheduler, orders, settings):
    return ActionServices(
        carts=cart_service,
        catalog=catalog,
        scheduler=scheduler,
        orders=orders,
        payments=StaticPaymentGateway(settings.payment_link_base_url, settings.currency),
        settings=settings,
    )


@pytest.fixture()
def make_engine(conversation_store, catalog, services, settings, clock):
    """Build an engine; keyword overrides replace individual collaborators."""

    def factory(**overrides):
        engine_settings = overrides.pop("settings", settings)
        options = {
            "store": conversation_store,
            "table": TransitionTable(default_rules()),
            "guards": GuardRegistry(catalog, unknown_policy=engine_settings.unknown_guard_policy),
            "actions": ActionRegistry(default_actions()),
            "services": services,
            "settings": engine_settings,
            "clock": clock,
        }
        options.update(overrides)
        return ConversationEngine(**options)

    return factory


@pytest.fixture()
def engine(make_engine):
    return make_engine()


@pytest.fixture()
def seed_conversation(conversation_store, clock):
    """Persist a conversation directly in ``state`` as if earlier events had run."""

    def seed(conversation_id, state, state_data=None, store=None):
        conversation = Conversation(
            conversation_id=conversation_id,
            current_state=state,
            state_data=dict(state_data or {}),
            started_at=clock.now,
            last_activity_at=clock.now,
            updated_at=clock.now,
        )
        assert (store or conversation_store).compare_and_swap(conversation_id, 0, conversation)
        return conversation

    return seed
