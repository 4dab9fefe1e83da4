import json
from pathlib import Path

import pytest

import config_store
from auth import check_password
from config_store import (
    CONFIG_VERSION,
    DEFAULT_REFRESH_INTERVAL,
    ConfigStore,
    JsonDocumentStore,
    is_valid_url,
    redact,
)
from errors import AlreadyConfiguredError, NotConfiguredError, ValidationError

JWT_SECRET = "3f" * 32


def test_unconfigured_store_reads_none(store: ConfigStore) -> None:
    assert store.get() is None
    assert not store.is_configured()
    assert store.devices() == []
    assert redact(store.get()) == {}


@pytest.mark.parametrize(
    "change,message",
    [
        ({"applicationTitle": ""}, "Application title is required"),
        ({"devices": []}, "At least one device must be configured"),
        ({"devices": [{"name": "x"}]}, "Device name and URL are required"),
        ({"devices": [{"name": "x", "url": "not-a-url"}]}, "Invalid URL for device x"),
        ({"miningCore": {"enabled": True, "url": "nope"}}, "Invalid mining core URL"),
    ],
)
def test_bootstrap_validation(store: ConfigStore, bootstrap_input: dict, change, message) -> None:
    with pytest.raises(ValidationError) as excinfo:
        store.create({**bootstrap_input, **change})

    assert excinfo.value.message == message
    assert not store.is_configured()


def test_bootstrap_persists_and_stamps(store: ConfigStore, documents: JsonDocumentStore, bootstrap_input: dict) -> None:
    created = store.create(bootstrap_input)

    assert created["applicationTitle"] == "Garage Miners"
    assert created["version"] == CONFIG_VERSION
    assert created["refreshInterval"] == DEFAULT_REFRESH_INTERVAL
    assert created["authentication"] == {"enabled": False}
    assert created["miningCore"] == {"enabled": False}
    assert created["createdAt"] == created["updatedAt"]
    assert len(created["devices"]) == 2

    with open(documents.path_for("app-config"), encoding="utf-8") as f:
        assert json.load(f) == created

    # a fresh store over the same directory sees the same document
    assert ConfigStore(documents).get() == created


def test_bootstrap_only_once(store: ConfigStore, bootstrap_input: dict) -> None:
    store.create(bootstrap_input)

    with pytest.raises(AlreadyConfiguredError):
        store.create({**bootstrap_input, "applicationTitle": "Other"})
    assert store.get()["applicationTitle"] == "Garage Miners"


def test_bootstrap_hashes_password(store: ConfigStore, bootstrap_input: dict) -> None:
    created = store.create(
        {
            **bootstrap_input,
            "authentication": {
                "enabled": True,
                "username": "admin",
                "password": "hunter2",
                "jwtSecret": JWT_SECRET,
            },
        }
    )

    auth = created["authentication"]
    assert "password" not in auth
    assert auth["passwordHash"].startswith("$2")
    assert check_password("hunter2", auth["passwordHash"])


def test_enabled_auth_needs_username_password_and_secret(store: ConfigStore, bootstrap_input: dict) -> None:
    full = {"enabled": True, "username": "admin", "password": "pw", "jwtSecret": JWT_SECRET}
    for missing in ("username", "password", "jwtSecret"):
        auth = {k: v for k, v in full.items() if k != missing}
        with pytest.raises(ValidationError):
            store.create({**bootstrap_input, "authentication": auth})


def test_update_before_bootstrap(store: ConfigStore) -> None:
    with pytest.raises(NotConfiguredError):
        store.update({"applicationTitle": "X"})


def test_update_is_a_shallow_overlay(store: ConfigStore, bootstrap_input: dict) -> None:
    store.create(
        {
            **bootstrap_input,
            "authentication": {
                "enabled": True,
                "username": "admin",
                "password": "pw",
                "jwtSecret": JWT_SECRET,
            },
        }
    )

    updated = store.update({"authentication": {"enabled": False}, "refreshInterval": 10})

    assert updated["authentication"] == {"enabled": False}
    assert updated["refreshInterval"] == 10
    assert updated["devices"] == store.get()["devices"]
    assert updated["applicationTitle"] == "Garage Miners"


def test_update_refreshes_updated_at(store: ConfigStore, bootstrap_input: dict, monkeypatch) -> None:
    monkeypatch.setattr(config_store, "utcnow_iso", lambda: "2024-01-01T00:00:00+00:00")
    created = store.create(bootstrap_input)
    monkeypatch.setattr(config_store, "utcnow_iso", lambda: "2024-02-01T00:00:00+00:00")

    updated = store.update({"applicationTitle": "Renamed"})

    assert updated["createdAt"] == created["createdAt"] == "2024-01-01T00:00:00+00:00"
    assert updated["updatedAt"] == "2024-02-01T00:00:00+00:00"


def test_update_validates_the_merged_document(store: ConfigStore, bootstrap_input: dict) -> None:
    store.create(bootstrap_input)

    with pytest.raises(ValidationError):
        store.update({"devices": []})
    with pytest.raises(ValidationError):
        store.update({"authentication": {"enabled": True, "username": "admin"}})

    assert len(store.get()["devices"]) == 2


def test_get_returns_copies(store: ConfigStore, bootstrap_input: dict) -> None:
    store.create(bootstrap_input)

    store.get()["devices"].clear()
    store.devices().clear()

    assert len(store.get()["devices"]) == 2


def test_find_device_by_id_or_name(store: ConfigStore, bootstrap_input: dict) -> None:
    store.create(bootstrap_input)

    assert store.find_device("bitaxe1")["url"] == "http://192.168.1.50"
    assert store.find_device("Bitaxe 2")["url"] == "http://192.168.1.51"
    assert store.find_device("missing") is None


def test_redact_drops_secrets_only() -> None:
    config = {
        "applicationTitle": "t",
        "authentication": {
            "enabled": True,
            "username": "admin",
            "passwordHash": "$2b$10$abc",
            "jwtSecret": "s",
            "jwtExpiration": "24h",
        },
    }

    out = redact(config)

    assert out["authentication"] == {"enabled": True, "username": "admin", "jwtExpiration": "24h"}
    assert config["authentication"]["jwtSecret"] == "s"


@pytest.mark.parametrize(
    "url,ok",
    [
        ("http://192.168.1.50", True),
        ("https://pool.example.com:4000/api", True),
        ("192.168.1.50", False),
        ("", False),
        (None, False),
        ("http://", False),
        ("http://a b", False),
        ("http://exämple..com", False),
        ("http://" + "a" * 64 + ".com", False),
        ("http://host:notaport", False),
        ("http://exämple.com", True),
        ("http://[::1]:4000", True),
        ("http://localhost:4000", True),
    ],
)
def test_url_validation(url, ok) -> None:
    assert is_valid_url(url) is ok


def test_document_store_round_trip(tmp_path: Path) -> None:
    documents = JsonDocumentStore(str(tmp_path / "nested" / "dir"))

    assert documents.read_document("thing") is None
    documents.write_document("thing", {"a": [1, 2]})
    documents.write_document("thing", {"a": [3]})

    assert documents.read_document("thing") == {"a": [3]}
    assert sorted(p.name for p in (tmp_path / "nested" / "dir").iterdir()) == ["thing.json"]


def test_document_store_rejects_corrupt_json(tmp_path: Path) -> None:
    documents = JsonDocumentStore(str(tmp_path))
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError):
        documents.read_document("broken")
