# dashboard_api.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Body, Depends, Header, Query, Request
from pydantic import BaseModel

from auth import AuthGate, Session, generate_secret
from axeos import STATUS_UNAVAILABLE, build_chart_data, device_key, fetch_statuses
from config_store import ConfigStore, redact
from errors import FeatureDisabled, NotFound, UpstreamUnavailable, ValidationError
from field_mappings import MappingStore, catalog_to_json, type_table_to_json
from settings import ServerSettings
from telemetry import categories_to_json, json_safe, process_telemetry, project_pool_status

LOGGER = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])
config_router = APIRouter(prefix="/api/config", tags=["config"])
devices_router = APIRouter(prefix="/api/devices", tags=["devices"])
mining_core_router = APIRouter(prefix="/api/mining-core", tags=["mining-core"])

ROUTERS = (auth_router, config_router, devices_router, mining_core_router)


@dataclass
class Services:
    """Everything a request handler needs, built once per app instance."""

    settings: ServerSettings
    config: ConfigStore
    mappings: MappingStore
    auth: AuthGate
    devices: Any
    mining_core: Any


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_session(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Optional[Session]:
    """Passes everything through while authentication is off."""
    session = get_services(request).auth.require_auth(authorization)
    request.state.user = session
    return session


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class ConfigCreate(BaseModel):
    applicationTitle: Optional[str] = None
    authentication: Optional[Dict[str, Any]] = None
    devices: Optional[List[Dict[str, Any]]] = None
    miningCore: Optional[Dict[str, Any]] = None
    refreshInterval: Optional[int] = None


# ---- auth ----

@auth_router.post("/login")
def api_login(payload: LoginRequest, services: Services = Depends(get_services)):
    return services.auth.login(payload.username, payload.password)


@auth_router.post("/generate-secret")
def api_generate_secret():
    return {"secret": generate_secret()}


# ---- application config ----

@config_router.get("")
def api_get_config(services: Services = Depends(get_services)):
    return redact(services.config.get())


@config_router.post("")
def api_create_config(payload: ConfigCreate, services: Services = Depends(get_services)):
    return services.config.create(payload.model_dump(exclude_none=True))


@config_router.put("")
def api_update_config(
    payload: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
    _session: Optional[Session] = Depends(require_session),
):
    return services.config.update(payload)


@config_router.get("/device-mappings")
def api_device_mappings(services: Services = Depends(get_services)):
    return catalog_to_json(services.mappings.catalog)


@config_router.get("/mining-mappings")
def api_mining_mappings(services: Services = Depends(get_services)):
    return type_table_to_json(services.mappings.type_table)


# ---- devices ----

def _find_device(services: Services, device_id: str) -> Dict[str, Any]:
    if not services.config.devices():
        raise NotFound("No devices configured")
    device = services.config.find_device(device_id)
    if not device:
        raise NotFound("Device not found")
    return device


@devices_router.get("")
def api_list_devices(
    services: Services = Depends(get_services),
    _session: Optional[Session] = Depends(require_session),
):
    return {"devices": fetch_statuses(services.config.devices(), services.devices)}


@devices_router.get("/{device_id}/data")
def api_device_data(
    device_id: str,
    services: Services = Depends(get_services),
    _session: Optional[Session] = Depends(require_session),
):
    device = _find_device(services, device_id)
    catalog = services.mappings.catalog

    try:
        data = services.devices.get_info(device["url"])
    except UpstreamUnavailable as e:
        # read path: report the device as down instead of failing the request
        LOGGER.warning("Device %s unavailable: %s", device_key(device), e)
        return {
            "deviceId": device_id,
            "deviceName": device.get("name"),
            "status": STATUS_UNAVAILABLE,
            "error": str(e),
            "lastUpdate": None,
            "categories": {c.name: [] for c in catalog},
            "raw": {},
        }

    categories = process_telemetry(data, catalog, services.mappings.type_table)
    return json_safe({
        "deviceId": device_id,
        "deviceName": device.get("name"),
        "status": data.get("status") or "online",
        "lastUpdate": data.get("lastUpdate"),
        "categories": categories_to_json(categories),
        "raw": data,
    })


@devices_router.get("/{device_id}/chart")
def api_device_chart(
    device_id: str,
    hours: int = Query(24, ge=1, le=720),
    services: Services = Depends(get_services),
    _session: Optional[Session] = Depends(require_session),
):
    _find_device(services, device_id)
    return build_chart_data(device_id, hours)


@devices_router.post("/{device_id}/restart")
def api_restart_device(
    device_id: str,
    services: Services = Depends(get_services),
    _session: Optional[Session] = Depends(require_session),
):
    device = _find_device(services, device_id)
    services.devices.restart(device["url"])
    return {"success": True, "message": "Device restart initiated"}


@devices_router.get("/{device_id}/config")
def api_get_device_config(
    device_id: str,
    services: Services = Depends(get_services),
    _session: Optional[Session] = Depends(require_session),
):
    device = _find_device(services, device_id)
    return json_safe(services.devices.get_config(device["url"]))


@devices_router.put("/{device_id}/config")
def api_update_device_config(
    device_id: str,
    payload: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
    _session: Optional[Session] = Depends(require_session),
):
    device = _find_device(services, device_id)
    services.devices.update_config(device["url"], payload)
    return {"success": True, "message": "Device configuration updated"}


# ---- mining core ----

@mining_core_router.get("/data")
def api_mining_core_data(
    services: Services = Depends(get_services),
    _session: Optional[Session] = Depends(require_session),
):
    config = services.config.get() or {}
    mining_core = config.get("miningCore") or {}
    if not mining_core.get("enabled"):
        raise FeatureDisabled()
    if not mining_core.get("url"):
        raise ValidationError("Mining core URL not configured")

    record = services.mining_core.get_pool_status(mining_core["url"])
    type_table = services.mappings.type_table
    pools = [
        {**pool, "data": project_pool_status(pool, type_table)}
        for pool in record.get("pools") or []
    ]
    return json_safe({
        "status": record.get("status"),
        "lastUpdate": record.get("lastUpdate"),
        "pools": pools,
        "data": project_pool_status(record, type_table),
        "raw": record,
    })
