import time
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional

import msgpack
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from server.src.core.config import Settings
from server.src.core.container import ServiceContainer
from server.src.main import create_app
from server.src.services.combat_service import CombatOutcome
from server.src.services.data_access_service import DataAccessService
from server.src.services.reference_data import load_reference_template

REFERENCE_TEMPLATE_PATH = Path(__file__).resolve().parents[2] / "data" / "character_template.yml"


class ScriptedResolver:
    """Combat resolver that records its calls and answers with a fixed line."""

    def __init__(self, damage: int = 12, finishing_action: str = "flee"):
        self.damage = damage
        self.finishing_action = finishing_action
        self.calls: List[tuple] = []

    async def resolve(self, template: Mapping[str, Any], opponent_action: str) -> CombatOutcome:
        self.calls.append((template.get("name"), opponent_action))
        return CombatOutcome(
            outcome={"opponentAction": opponent_action},
            text=":me: answers :them: for :damage: damage",
            damage=self.damage,
            finished=opponent_action == self.finishing_action,
        )


@pytest.fixture
def reference_template() -> Dict[str, Any]:
    return load_reference_template(REFERENCE_TEMPLATE_PATH)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        MONGODB_URL="mongodb://localhost:27017",
        MONGODB_DATABASE="skirmish_test",
        ENVIRONMENT="testing",
        UPDATE_TEMPLATE=False,
        SEED_REFERENCE_TEMPLATE=True,
        SESSION_IDLE_TIMEOUT=1800.0,
        SESSION_SWEEP_INTERVAL=3600.0,
        REFERENCE_TEMPLATE_PATH=str(REFERENCE_TEMPLATE_PATH),
    )


@pytest.fixture
def database():
    """Fresh in-memory document store per test."""
    return AsyncMongoMockClient()["skirmish_test"]


@pytest.fixture
def store(database) -> DataAccessService:
    return DataAccessService(database)


@pytest_asyncio.fixture
async def seeded_store(store: DataAccessService, reference_template) -> DataAccessService:
    """Store holding the character prototype, one user and two characters."""
    await store.insert("prototypes", dict(reference_template))
    await store.insert(
        "users", {"username": "alice", "password": "secret", "sessionKey": "key-alice"}
    )
    await store.insert(
        "characters",
        [
            {"owner": "alice", "template": {"name": "Brute", "maxHealth": 350}},
            {"owner": "alice", "template": {"name": "Scout"}},
        ],
    )
    return store


@pytest.fixture
def resolver() -> ScriptedResolver:
    return ScriptedResolver()


@pytest.fixture
def container(test_settings, database, reference_template, resolver) -> ServiceContainer:
    return ServiceContainer.build(
        test_settings,
        database=database,
        combat_resolver=resolver,
        reference_template=reference_template,
    )


@pytest.fixture
def client(container) -> Generator[TestClient, None, None]:
    """Test client with the application lifespan running."""
    with TestClient(create_app(container)) as test_client:
        yield test_client


# =============================================================================
# Socket helpers
# =============================================================================


def send_frame(websocket, event: str, data: Optional[Dict[str, Any]] = None) -> None:
    websocket.send_bytes(msgpack.packb({"event": event, "data": data or {}}, use_bin_type=True))


def receive_frame(websocket) -> Dict[str, Any]:
    return msgpack.unpackb(websocket.receive_bytes(), raw=False)


def request(websocket, data: Dict[str, Any]) -> Dict[str, Any]:
    """Send a ``request`` frame and return the ``response`` payload."""
    send_frame(websocket, "request", data)
    frame = receive_frame(websocket)
    assert frame["event"] == "response"
    return frame["data"]


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll ``predicate`` while the application loop runs in its own thread."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def socket_helpers():
    """Frame helpers for socket tests."""

    class Helpers:
        send = staticmethod(send_frame)
        receive = staticmethod(receive_frame)
        request = staticmethod(request)
        wait_until = staticmethod(wait_until)

    return Helpers
