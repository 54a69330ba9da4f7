"""Shared pytest fixtures for the Homestock test suite."""

from __future__ import annotations

from typing import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from homestock.config import get_settings
from homestock.db.households import create_household, generate_invite_code, join_household
from homestock.db.repository import reset_repository_state
from homestock.models.household import Household
from homestock.server.app import create_app


@pytest.fixture()
def app() -> Generator[FastAPI, None, None]:
    """Create a new FastAPI app instance for each test and reset overrides."""

    application = create_app()
    yield application
    application.dependency_overrides.clear()


@pytest.fixture()
def client(app) -> TestClient:
    """Return a test client bound to the FastAPI app."""

    return TestClient(app)


@pytest.fixture()
def household() -> Household:
    """Household created by ``alice`` and joined by ``bob``."""

    home = create_household("Maple Street", "alice")
    invite = generate_invite_code("alice")
    join_household(invite.invite_code, "bob")
    return home


@pytest.fixture()
def other_household() -> Household:
    """Separate household owned by ``mallory``."""

    return create_household("Elm Court", "mallory")


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Ensure each test uses an isolated SQLite database location."""

    db_path = tmp_path / "test_homestock.db"
    monkeypatch.setenv("HOMESTOCK_DATABASE_PATH", str(db_path))
    get_settings.cache_clear()
    reset_repository_state()
    yield
    reset_repository_state()
    monkeypatch.delenv("HOMESTOCK_DATABASE_PATH", raising=False)
    get_settings.cache_clear()
