import os
import pathlib
import sys
import tempfile
import uuid
from dataclasses import dataclass, field
from typing import Any

import pytest
from sqlalchemy.orm import Session, sessionmaker

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
# ``supportdesk.main`` initialises file logging at import time.
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="supportdesk-logs-"))

from supportdesk.models import FAQ, Agent, Base, Business, ChatSession, Policy, Product, Service
from supportdesk.models.session import get_sessionmaker


@dataclass(eq=False)
class RecordingConnection:
    """Stands in for a WebSocket: remembers every frame it was sent."""

    frames: list[dict[str, Any]] = field(default_factory=list)
    fail: bool = False

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.frames.append(data)

    def events(self, name: str | None = None) -> list[dict[str, Any]]:
        return [frame for frame in self.frames if name is None or frame["event"] == name]

    def names(self) -> list[str]:
        return [frame["event"] for frame in self.frames]


@dataclass
class SeedData:
    session_factory: sessionmaker[Session]
    business_id: uuid.UUID
    offline_business_id: uuid.UUID
    agents: dict[str, uuid.UUID]

    def new_chat_session(self, business_id: uuid.UUID | None = None, **details: Any) -> uuid.UUID:
        with self.session_factory.begin() as session:
            record = ChatSession(business_id=business_id or self.business_id, **details)
            session.add(record)
            session.flush()
            return record.id


@pytest.fixture
def session_factory(tmp_path) -> sessionmaker[Session]:
    db_url = f"sqlite+pysqlite:///{tmp_path / 'supportdesk.db'}"
    factory = get_sessionmaker(db_url)
    engine = factory.kw["bind"]
    Base.metadata.create_all(engine)
    yield factory
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def seeded(session_factory) -> SeedData:
    with session_factory.begin() as session:
        acme = Business(name="Acme Outfitters", slug="acme", live_chat_enabled=True)
        offline = Business(name="Offline Co", slug="offline-co", live_chat_enabled=False)
        session.add_all([acme, offline])
        session.flush()
        agents = {
            "alice": Agent(business_id=acme.id, name="Alice", email="alice@acme.example"),
            "bob": Agent(business_id=acme.id, name="Bob", email="bob@acme.example"),
            "carol": Agent(business_id=offline.id, name="Carol", email="carol@offline.example"),
        }
        session.add_all(agents.values())
        session.add_all(
            [
                FAQ(
                    business_id=acme.id,
                    question="What are your store hours?",
                    answer="Our store is open from 9am to 6pm, Monday to Saturday. We are closed on Sundays.",
                    category="General",
                ),
                Product(
                    business_id=acme.id,
                    name="Trail Backpack",
                    description="A 40 litre backpack for long day hikes.",
                    category="Bags",
                    price_amount=89,
                    price_currency="USD",
                    sku="TB-40",
                    quantity=12,
                ),
                Product(
                    business_id=acme.id,
                    name="Camp Stove",
                    description="Compact gas stove.",
                    category="Cooking",
                    price_amount=45,
                    price_currency="USD",
                    quantity=0,
                ),
                Product(
                    business_id=acme.id,
                    name="Retired Tent",
                    description="No longer sold.",
                    is_active=False,
                ),
                Service(
                    business_id=acme.id,
                    name="Gear Repair",
                    description="We repair zips, straps and seams.",
                    pricing_type="hourly",
                    pricing_amount=30,
                    pricing_currency="USD",
                    duration="1-3 days",
                ),
                Policy(
                    business_id=acme.id,
                    title="Return Policy",
                    content="Unused items can be returned within 30 days with a receipt.",
                    type="returns",
                ),
            ]
        )
        session.flush()
        data = SeedData(
            session_factory=session_factory,
            business_id=acme.id,
            offline_business_id=offline.id,
            agents={name: agent.id for name, agent in agents.items()},
        )
    return data


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def api_client(session_factory, seeded):
    """TestClient bound to the per-test database with no text generator."""

    from fastapi.testclient import TestClient

    from supportdesk.conversations.generation import KnowledgeAnswerer
    from supportdesk.main import app
    from supportdesk.models.session import get_db_session, get_session_factory
    from supportdesk.rate_limit import limiter
    from supportdesk.realtime.router import MessageRouter
    from supportdesk.settings import Settings

    def _session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.state.message_router = MessageRouter()
    app.state.answerer = KnowledgeAnswerer(None, Settings(database_url=None))
    limiter.reset()
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
    app.state.answerer = None
