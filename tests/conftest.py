import os

import pytest
from fastapi.testclient import TestClient

from dtrack_publisher.client.api import ApiClient
from dtrack_publisher.settings import PublisherSettings

from fakes import API_KEY, BASE_URL, FakeClock, FakeDependencyTrack


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    # Settings read DTRACK_* from the environment; keep the developer's out.
    for var in list(os.environ):
        if var.startswith("DTRACK_"):
            monkeypatch.delenv(var)


@pytest.fixture
def fake():
    return FakeDependencyTrack()


@pytest.fixture
def http(fake):
    return TestClient(fake.app)


@pytest.fixture
def client(http):
    return ApiClient(BASE_URL, API_KEY, connection_timeout=3, read_timeout=7, http=http)


@pytest.fixture
def settings():
    return PublisherSettings(url=BASE_URL, polling_interval=2, polling_timeout=1)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bom(tmp_path):
    p = tmp_path / "bom.json"
    p.write_text('{"bomFormat":"CycloneDX","specVersion":"1.5","version":1,"components":[]}')
    return p
