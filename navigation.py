# navigation.py
"""
Which screen a dashboard client should be on.

Re-evaluated from scratch on every navigation: nothing here runs in the
background or remembers a previous state beyond the cached configuration.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

import jwt


class RouteState(str, Enum):
    UNCONFIGURED = "unconfigured"
    NEEDS_LOGIN = "needs_login"
    READY = "ready"


HOME_PATH = "/"
LOGIN_PATH = "/login"
BOOTSTRAP_PATH = "/bootstrap"

STATE_PATHS = {
    RouteState.UNCONFIGURED: BOOTSTRAP_PATH,
    RouteState.NEEDS_LOGIN: LOGIN_PATH,
    RouteState.READY: HOME_PATH,
}


def resolve_route(config_present: bool, auth_enabled: bool, session_valid: bool) -> RouteState:
    if not config_present:
        return RouteState.UNCONFIGURED
    if auth_enabled and not session_valid:
        return RouteState.NEEDS_LOGIN
    return RouteState.READY


def session_is_live(token: Optional[str], now: Optional[datetime] = None) -> bool:
    """
    Client-side check of a stored token: present and its exp claim still in the
    future. The signature isn't checked here, the server does that per request.
    """
    if not token:
        return False
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return False
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return False
    now = now or datetime.now(timezone.utc)
    return exp > now.timestamp()


class NavigationGuard:
    def __init__(self, load_config: Callable[[], Optional[Dict[str, Any]]]):
        self._load_config = load_config
        self._config: Optional[Dict[str, Any]] = None

    def _config_cached(self) -> Dict[str, Any]:
        if not self._config:
            self._config = self._load_config() or {}
        return self._config

    def invalidate(self) -> None:
        self._config = None

    def _auth_enabled(self) -> bool:
        auth = self._config_cached().get("authentication") or {}
        return bool(auth.get("enabled"))

    def state(self, token: Optional[str] = None, now: Optional[datetime] = None) -> RouteState:
        config = self._config_cached()
        return resolve_route(
            config_present=bool(config),
            auth_enabled=self._auth_enabled(),
            session_valid=session_is_live(token, now),
        )

    def navigate(self, path: str, token: Optional[str] = None, now: Optional[datetime] = None) -> str:
        """Path the client should end up on when it asks for `path`."""
        if path == BOOTSTRAP_PATH:
            return BOOTSTRAP_PATH
        if path == LOGIN_PATH:
            if self._auth_enabled():
                return LOGIN_PATH
            # login makes no sense with authentication off
            return STATE_PATHS[self.state(token, now)]
        state = self.state(token, now)
        if state is RouteState.READY:
            return path
        return STATE_PATHS[state]
