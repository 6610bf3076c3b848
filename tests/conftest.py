import os
from datetime import date

import pytest
from fastapi.testclient import TestClient

# fabritrack.main builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from fabritrack.config import AppConfig
from fabritrack.db import DBConfig, build_engine, build_session_factory
from fabritrack.models import Base
from fabritrack.prompt_client import PromptClient
from fabritrack.seed import run_seed
from fabritrack.store import SqlDocumentStore

SPREADSHEET_ID = "sheet-test"
SEED_DAY = date(2024, 10, 21)


class FakePromptClient(PromptClient):
    def __init__(self, reply=None, error=None):
        self.reply = reply or {}
        self.error = error
        self.calls = []

    def generate(self, prompt, media, output_schema):
        self.calls.append({"prompt": prompt, "media": media, "schema": output_schema})
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture(scope="function")
def engine():
    eng = build_engine(DBConfig(url="sqlite:///:memory:"))
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)


@pytest.fixture(scope="function")
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture(scope="function")
def store(session_factory):
    return SqlDocumentStore(session_factory)


@pytest.fixture(scope="function")
def seeded_store(store):
    run_seed(store, spreadsheet_id=SPREADSHEET_ID, today=SEED_DAY)
    return store


@pytest.fixture(scope="function")
def broken_store():
    # no tables created, every statement fails
    eng = build_engine(DBConfig(url="sqlite:///:memory:"))
    return SqlDocumentStore(build_session_factory(eng))


@pytest.fixture(scope="function")
def app_config():
    return AppConfig(
        spreadsheet_id=SPREADSHEET_ID,
        default_node="Página1",
        admin_token="test-admin-token",
        log_level="INFO",
        ai_model="fake-model",
        openai_api_key=None,
        monthly_hours=270,
    )


@pytest.fixture(scope="function")
def client(seeded_store, app_config):
    from fabritrack.main import app, get_config, get_store

    app.dependency_overrides[get_store] = lambda: seeded_store
    app.dependency_overrides[get_config] = lambda: app_config
    yield TestClient(app)
    app.dependency_overrides.clear()
