import asyncio
import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sse_starlette.sse import AppStatus

import models  # noqa: F401  registers the tables on Base
from auth import TokenData, create_access_token
from chat_store import ChatStore
from database import Base
from document_store import DocumentStore
from llm.base import BaseLLMProvider
from rate_limiter import limiter
from tools.registry import ActorContext

USER_ID = "user-1"
USERNAME = "Ada"


class ScriptedGateway(BaseLLMProvider):
    """Gateway double that replays one scripted list of events per generation call.

    A script item that is an Exception is raised; an asyncio.Event is awaited
    before the next item is produced.
    """

    provider_name = "scripted"

    def __init__(self, turns, repeat_last=False):
        super().__init__(api_key=None, base_url=None, model_id="claude-test")
        # kept by reference so a fixture can hand over a list the test fills in later
        self.turns = turns
        self.repeat_last = repeat_last
        self.calls = []

    async def chat_stream(self, messages, system_prompt=None, tools=None, temperature=None):
        self.calls.append({
            "messages": list(messages),
            "system_prompt": system_prompt,
            "tools": tools,
            "temperature": temperature,
        })
        if not self.turns:
            raise AssertionError("unexpected generation call")
        turn = self.turns[0] if self.repeat_last and len(self.turns) == 1 else self.turns.pop(0)
        for item in turn:
            if isinstance(item, Exception):
                raise item
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            yield item


def decode(record: dict) -> tuple[str, dict]:
    return record["event"], json.loads(record["data"])


async def drain(channel) -> list[tuple[str, dict]]:
    """Collect everything currently queued on a channel without waiting for more."""
    out = []
    while channel.pending():
        try:
            record = await channel.__anext__()
        except StopAsyncIteration:
            # the end-of-stream marker is queued too, so it counts as pending
            break
        out.append(decode(record))
    return out


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    # sse-starlette keeps a module-level exit event bound to the first loop that used it
    AppStatus.should_exit_event = None
    yield
    AppStatus.should_exit_event = None


@pytest.fixture(autouse=True)
def disable_rate_limits():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def token_data():
    return TokenData(user_id=USER_ID, username=USERNAME)


@pytest.fixture
def actor(db):
    ChatStore(db).ensure_actor(USER_ID, USERNAME)
    return ActorContext(user_id=USER_ID, username=USERNAME, documents=DocumentStore(db))


@pytest.fixture
def gateway_factory():
    return ScriptedGateway


@pytest.fixture
def auth_headers():
    def _headers(user_id=USER_ID, username=USERNAME):
        token = create_access_token({"user_id": user_id, "username": username})
        return {"Authorization": f"Bearer {token}"}
    return _headers
