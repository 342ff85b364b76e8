"""Shared fixtures for the agenda test-suite.

The application module builds its engine from the environment at import time,
so the primary database and the fallback credentials are neutralised here
before anything under ``agenda`` is imported. Each test gets its own
in-memory SQLite blob store and a recording Telegram transport.
"""
import json
import os

os.environ["DATABASE_URL"] = ""
os.environ["GIST_ID"] = ""
os.environ["GIST_TOKEN"] = ""
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["SERVICE_TOKEN"] = ""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from agenda.config import Settings
from agenda.db import Base
from agenda.main import app, get_notifier, get_store
from agenda.notifier import ChatDirectory, TelegramNotifier
from agenda.storage import DocumentStore, SqlBlobBackend
from tests.helpers import ADMIN_CHAT, CSV_URL


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture()
def blob_backend(session_factory):
    return SqlBlobBackend(session_factory, "agenda", "appointments.json")


@pytest.fixture()
def store(blob_backend):
    return DocumentStore([blob_backend])


class TelegramRecorder:
    """httpx transport answering the CSV mapping and recording sendMessage calls."""

    def __init__(self, csv_text: str = "email,chat_id\na@x.com,111\n") -> None:
        self.csv_text = csv_text
        self.csv_hits = 0
        self.sent: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == CSV_URL:
            self.csv_hits += 1
            return httpx.Response(200, text=self.csv_text)
        if request.url.path.endswith("/sendMessage"):
            self.sent.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404)


@pytest.fixture()
def telegram():
    return TelegramRecorder()


@pytest.fixture()
def notifier_settings():
    return Settings(
        _env_file=None,
        database_url="",
        telegram_enabled=True,
        telegram_bot_token="bot-token",
        telegram_admin_chat_id=ADMIN_CHAT,
        telegram_users_csv_url=CSV_URL,
    )


@pytest.fixture()
def notifier(notifier_settings, telegram):
    client = httpx.Client(transport=httpx.MockTransport(telegram))
    directory = ChatDirectory(CSV_URL, client, ttl_seconds=300)
    return TelegramNotifier(notifier_settings, client, directory)


@pytest.fixture()
def client(store, notifier):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
