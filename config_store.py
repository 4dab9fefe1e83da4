# config_store.py
from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit
import copy
import json
import logging
import os
import tempfile

from auth import hash_password
from errors import AlreadyConfiguredError, NotConfiguredError, ValidationError
from value_format import utcnow_iso

LOGGER = logging.getLogger(__name__)

APP_CONFIG_DOC = "app-config"
CONFIG_VERSION = "2.0.0"
DEFAULT_REFRESH_INTERVAL = 25

# never handed out by GET /api/config
SECRET_AUTH_FIELDS = ("passwordHash", "jwtSecret")


class JsonDocumentStore:
    """One JSON file per named document; last write wins."""

    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(self.directory, exist_ok=True)

    def path_for(self, name: str) -> str:
        return os.path.join(self.directory, f"{name}.json")

    def read_document(self, name: str) -> Optional[Any]:
        path = self.path_for(name)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            try:
                return json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Document {path} is not valid JSON: {e}") from e

    def write_document(self, name: str, data: Any) -> None:
        # write-then-rename so readers never see a half-written file
        fd, tmp_path = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path_for(name))
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        LOGGER.debug("Wrote document %s", name)


def is_valid_url(url: Any) -> bool:
    """Scheme plus a usable host: no blanks, no empty or over-long labels, numeric port."""
    if not isinstance(url, str) or not url.strip():
        return False
    text = url.strip()
    if any(ch.isspace() for ch in text):
        return False
    try:
        parts = urlsplit(text)
        host = parts.hostname
        parts.port
    except ValueError:
        return False
    if not parts.scheme or not host:
        return False
    try:
        # the idna codec rejects empty labels and labels over 63 octets
        host.encode("idna")
    except UnicodeError:
        return False
    return True


def _validate_devices(devices: Any) -> None:
    if not isinstance(devices, list) or not devices:
        raise ValidationError("At least one device must be configured")
    for device in devices:
        if not isinstance(device, dict) or not device.get("name") or not device.get("url"):
            raise ValidationError("Device name and URL are required")
        if not is_valid_url(device["url"]):
            raise ValidationError(f"Invalid URL for device {device['name']}")


def _validate_mining_core(mining_core: Any) -> None:
    if not isinstance(mining_core, dict):
        raise ValidationError("miningCore must be an object")
    if mining_core.get("enabled") and mining_core.get("url") and not is_valid_url(mining_core["url"]):
        raise ValidationError("Invalid mining core URL")


def _prepare_authentication(auth: Any) -> Dict[str, Any]:
    if auth is None:
        return {"enabled": False}
    if not isinstance(auth, dict):
        raise ValidationError("authentication must be an object")
    auth = dict(auth)
    auth.setdefault("enabled", False)

    password = auth.pop("password", None)
    if password:
        auth["passwordHash"] = hash_password(str(password))

    if auth["enabled"]:
        if not auth.get("username"):
            raise ValidationError("A username is required when authentication is enabled")
        if not auth.get("passwordHash"):
            raise ValidationError("A password is required when authentication is enabled")
        if not auth.get("jwtSecret"):
            raise ValidationError("A JWT secret is required when authentication is enabled")
    return auth


def _validate_document(config: Dict[str, Any]) -> None:
    if not config.get("applicationTitle"):
        raise ValidationError("Application title is required")
    _validate_devices(config.get("devices"))
    _validate_mining_core(config.get("miningCore"))


def redact(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not config:
        return {}
    out = copy.deepcopy(config)
    auth = out.get("authentication")
    if isinstance(auth, dict):
        for key in SECRET_AUTH_FIELDS:
            auth.pop(key, None)
    return out


class ConfigStore:
    """
    Owner of the single application configuration document.

    Callers get copies; the only ways to change the document are create()
    (once) and update() (shallow overlay).
    """

    def __init__(self, documents: JsonDocumentStore):
        self.documents = documents
        self._config: Optional[Dict[str, Any]] = documents.read_document(APP_CONFIG_DOC)
        if self._config is not None and not isinstance(self._config, dict):
            raise ValueError(f"{APP_CONFIG_DOC} document must be a JSON object")

    def get(self) -> Optional[Dict[str, Any]]:
        if not self._config:
            return None
        return copy.deepcopy(self._config)

    def is_configured(self) -> bool:
        return bool(self._config)

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if self.is_configured():
            raise AlreadyConfiguredError()

        if not data.get("applicationTitle"):
            raise ValidationError("Application title is required")
        _validate_devices(data.get("devices"))

        mining_core = data.get("miningCore")
        if mining_core is None:
            mining_core = {"enabled": False}
        _validate_mining_core(mining_core)
        mining_core = dict(mining_core)
        mining_core.setdefault("enabled", False)

        now = utcnow_iso()
        config = {
            "applicationTitle": data["applicationTitle"],
            "version": CONFIG_VERSION,
            "authentication": _prepare_authentication(data.get("authentication")),
            "devices": copy.deepcopy(data["devices"]),
            "miningCore": mining_core,
            "refreshInterval": data.get("refreshInterval") or DEFAULT_REFRESH_INTERVAL,
            "createdAt": now,
            "updatedAt": now,
        }
        self._save(config)
        LOGGER.info(
            "Created configuration %r with %d device(s)",
            config["applicationTitle"],
            len(config["devices"]),
        )
        return copy.deepcopy(config)

    def update(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        """
        Overlay top-level keys of `partial` onto the document.

        Nested objects are replaced wholesale: sending {"authentication": {"enabled": False}}
        drops the stored username, hash and secret.
        """
        if not self.is_configured():
            raise NotConfiguredError()

        partial = dict(partial)
        if "authentication" in partial:
            partial["authentication"] = _prepare_authentication(partial["authentication"])

        merged = {**self._config, **partial, "updatedAt": utcnow_iso()}
        _validate_document(merged)
        self._save(merged)
        LOGGER.info("Updated configuration keys: %s", ", ".join(sorted(partial)) or "(none)")
        return copy.deepcopy(merged)

    def find_device(self, device_id: str) -> Optional[Dict[str, Any]]:
        for device in self.devices():
            if device.get("id") == device_id or device.get("name") == device_id:
                return device
        return None

    def devices(self) -> List[Dict[str, Any]]:
        if not self._config:
            return []
        return copy.deepcopy(self._config.get("devices") or [])

    def _save(self, config: Dict[str, Any]) -> None:
        self.documents.write_document(APP_CONFIG_DOC, config)
        self._config = config
