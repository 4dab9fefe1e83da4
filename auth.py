# auth.py
"""
Login, token issue/verify and the "is auth required at all" gate.

Stored password hashes are bcrypt(sha256_hex(password)): the submitted password
is first reduced to a fixed, unsalted SHA-256 hex digest and that digest is
what bcrypt salts and compares. The double hashing adds nothing over plain
bcrypt; it is kept so hashes produced by existing installs keep verifying.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Union
import hashlib
import logging
import re
import secrets

import bcrypt
import jwt

from errors import (
    AuthDisabled,
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvalidRequest,
    MissingToken,
    ServerMisconfigured,
)

LOGGER = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
DEFAULT_EXPIRATION = "1h"
DEFAULT_EXPIRATION_SECONDS = 3600
SESSION_USER_ID = 1

_DURATION_RE = re.compile(
    r"^(?P<value>-?(?:\d+)?\.?\d+)\s*"
    r"(?P<unit>milliseconds?|msecs?|ms|seconds?|secs?|s|minutes?|mins?|m|"
    r"hours?|hrs?|h|days?|d|weeks?|w|years?|yrs?|y)?$",
    re.IGNORECASE,
)

_UNIT_SECONDS = {
    "ms": 0.001, "msec": 0.001, "msecs": 0.001, "millisecond": 0.001, "milliseconds": 0.001,
    "s": 1, "sec": 1, "secs": 1, "second": 1, "seconds": 1,
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hr": 3600, "hrs": 3600, "hour": 3600, "hours": 3600,
    "d": 86400, "day": 86400, "days": 86400,
    "w": 604800, "week": 604800, "weeks": 604800,
    "y": 31557600, "yr": 31557600, "yrs": 31557600, "year": 31557600, "years": 31557600,
}


def digest_password(raw_password: str) -> str:
    return hashlib.sha256(raw_password.encode("utf-8")).hexdigest()


def hash_password(raw_password: str) -> str:
    return bcrypt.hashpw(digest_password(raw_password).encode("utf-8"), bcrypt.gensalt()).decode("ascii")


def check_password(raw_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(
            digest_password(raw_password).encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        LOGGER.warning("Stored password hash is not a valid bcrypt hash")
        return False


def generate_secret() -> str:
    return secrets.token_hex(32)


def parse_expiration(value: Union[str, int, float, None]) -> int:
    """
    Token lifetime in seconds.

    Numbers are seconds; strings use the "10m" / "2 days" / "1h" style. A bare
    numeric string counts as milliseconds, same as the token libraries that
    wrote the existing configs.
    """
    if value is None or value == "":
        return DEFAULT_EXPIRATION_SECONDS
    if isinstance(value, bool):
        raise ValueError(f"Invalid token expiration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = int(value)
    else:
        m = _DURATION_RE.match(str(value).strip())
        if not m:
            raise ValueError(f"Invalid token expiration: {value!r}")
        unit = (m.group("unit") or "ms").lower()
        seconds = int(float(m.group("value")) * _UNIT_SECONDS[unit])
    if seconds <= 0:
        raise ValueError(f"Token expiration must be positive: {value!r}")
    return seconds


@dataclass(frozen=True)
class Session:
    username: str
    id: int
    issued_at: datetime
    expiry: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"username": self.username, "id": self.id}


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) < 2 or not parts[1]:
        return None
    return parts[1]


class AuthGate:
    def __init__(self, load_config: Callable[[], Optional[Dict[str, Any]]]):
        self._load_config = load_config

    def _auth_config(self) -> Dict[str, Any]:
        config = self._load_config() or {}
        auth = config.get("authentication")
        return auth if isinstance(auth, dict) else {}

    def auth_enabled(self) -> bool:
        return bool(self._auth_config().get("enabled"))

    def login(self, username: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        if not username or not password:
            raise InvalidRequest()

        auth = self._auth_config()
        if not auth.get("enabled"):
            raise AuthDisabled()

        if username != auth.get("username"):
            LOGGER.warning("Rejected login for unknown user %r", username)
            raise InvalidCredentials()

        if not check_password(password, str(auth.get("passwordHash") or "")):
            LOGGER.warning("Rejected login for %r: wrong password", username)
            raise InvalidCredentials()

        secret = auth.get("jwtSecret")
        if not secret:
            raise ServerMisconfigured()

        expires_in = auth.get("jwtExpiration") or DEFAULT_EXPIRATION
        try:
            ttl = parse_expiration(expires_in)
        except ValueError:
            LOGGER.warning("Ignoring invalid jwtExpiration %r, using %s", expires_in, DEFAULT_EXPIRATION)
            expires_in, ttl = DEFAULT_EXPIRATION, DEFAULT_EXPIRATION_SECONDS

        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "username": username,
                "id": SESSION_USER_ID,
                "iat": now,
                "exp": now + timedelta(seconds=ttl),
            },
            secret,
            algorithm=JWT_ALGORITHM,
        )
        LOGGER.info("Issued session token for %r (expires in %s)", username, expires_in)
        return {
            "token": token,
            "user": {"username": username, "id": SESSION_USER_ID},
            "expiresIn": expires_in,
        }

    def verify(self, token: Optional[str]) -> Session:
        if not token:
            raise MissingToken()

        secret = self._auth_config().get("jwtSecret")
        if not secret:
            raise ServerMisconfigured()

        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["exp"]},
            )
        except jwt.InvalidTokenError as e:
            LOGGER.info("Rejected token: %s", e)
            raise InvalidOrExpiredToken() from e

        return Session(
            username=str(claims.get("username") or ""),
            id=int(claims.get("id") or SESSION_USER_ID),
            issued_at=datetime.fromtimestamp(claims.get("iat", 0), tz=timezone.utc),
            expiry=datetime.fromtimestamp(claims.get("exp", 0), tz=timezone.utc),
        )

    def require_auth(self, authorization: Optional[str]) -> Optional[Session]:
        """None when authentication is switched off, otherwise the verified session."""
        if not self.auth_enabled():
            return None
        return self.verify(bearer_token(authorization))
