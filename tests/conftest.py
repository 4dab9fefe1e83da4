from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app import build_services, create_app
from config_store import ConfigStore, JsonDocumentStore
from settings import ServerSettings

JWT_SECRET = "3f" * 32


@pytest.fixture
def documents(tmp_path: Path) -> JsonDocumentStore:
    return JsonDocumentStore(str(tmp_path / "config"))


@pytest.fixture
def store(documents: JsonDocumentStore) -> ConfigStore:
    return ConfigStore(documents)


@pytest.fixture
def bootstrap_input() -> dict:
    return {
        "applicationTitle": "Garage Miners",
        "devices": [
            {"id": "bitaxe1", "name": "Bitaxe 1", "url": "http://192.168.1.50"},
            {"name": "Bitaxe 2", "url": "http://192.168.1.51"},
        ],
    }


@pytest.fixture
def settings(tmp_path: Path) -> ServerSettings:
    return ServerSettings(
        config_dir=str(tmp_path / "config"),
        static_dir=str(tmp_path / "public"),
        transport="simulated",
    )


@pytest.fixture
def services(settings: ServerSettings):
    return build_services(settings)


@pytest.fixture
def client(settings: ServerSettings, services) -> TestClient:
    return TestClient(create_app(settings, services=services))
