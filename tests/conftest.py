"""
Pytest configuration and fixtures for the factory inspection tests.
"""

import os
import shutil
import tempfile

import httpx
import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="inspection_test_data_")
os.environ["FACTORY_INSPECTION_DB"] = os.path.join(_TEST_DATA_DIR, "default.db")
os.environ.pop("S3_BUCKET_NAME", None)

from factory_inspection.configuration import load_config
from factory_inspection.database import InspectionDatabase
from factory_inspection.hooks import InspectionApi
from factory_inspection.main import app, get_database
from factory_inspection.query_cache import QueryCache
from factory_inspection.report import ReportRenderer


@pytest.fixture(scope="session", autouse=True)
def test_data_dir():
    """Remove the shared test data directory after the session."""
    yield _TEST_DATA_DIR
    shutil.rmtree(_TEST_DATA_DIR, ignore_errors=True)


@pytest.fixture
def config(tmp_path):
    return load_config({"report": {"output_dir": str(tmp_path / "reports")}})


@pytest.fixture
def database(tmp_path):
    """A fresh database per test, wired into the app."""
    db = InspectionDatabase(tmp_path / "inspections.db")
    app.dependency_overrides[get_database] = lambda: db
    yield db
    app.dependency_overrides.pop(get_database, None)


@pytest.fixture
def client(database):
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def request_log():
    """Requests sent by the api fixture, in order."""
    return []


@pytest.fixture
async def api(database, request_log):
    """Hooks talking to the real app in-process over ASGI."""

    async def record(request: httpx.Request) -> None:
        request_log.append(request)

    http_client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
        event_hooks={"request": [record]},
    )
    async with InspectionApi(http_client, QueryCache()) as session:
        yield session


@pytest.fixture
def renderer(config):
    return ReportRenderer(config)


@pytest.fixture
def factory_payload():
    return {
        "name": "Negev Textiles",
        "address": "12 HaMelacha St, Beersheba",
        "mapLink": "https://maps.google.com/?q=31.25,34.79",
    }


@pytest.fixture
def inspection_payload():
    return {
        "factoryName": "Negev Textiles",
        "factoryAddress": "12 HaMelacha St, Beersheba",
        "mapLink": "",
        "inspector": "Dana Levi",
        "gregorianDate": "2024-01-01",
        "hebrewDate": "20 Tevet 5784",
        "contactName": "Yossi Cohen",
        "contactPhone": "050-1234567",
        "contactEmail": "yossi@example.com",
        "findings": "Fire exits blocked on floor 2.\nExtinguishers up to date.",
        "recommendations": "Clear the exits within 7 days.",
    }
