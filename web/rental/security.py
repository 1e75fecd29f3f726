from __future__ import annotations

import hmac
import logging
import time
from typing import Annotated, Callable, Iterable, Optional

from fastapi import Depends, Header, Request
from jose import JWTError, jwt

from .core import AuthenticationError, AuthorizationError, ConfigurationError, Settings, get_settings
from .roles import Actor, Role, to_role_str

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Basic JWT helpers
# ---------------------------------------------------------------------------


def _now() -> int:
    return int(time.time())


def _signing_key(settings: Settings) -> str:
    if not settings.SECRET_KEY:
        raise ConfigurationError("SECRET_KEY is not configured")
    return settings.SECRET_KEY


def create_token(
    sub: str,
    role: str,
    *,
    expires_in: Optional[int] = None,
    settings: Optional[Settings] = None,
    **extra_claims,
) -> str:
    """Return a signed JWT including any *extra_claims*.

    Standard claims:
    • sub  – user identifier
    • role – user role string
    • exp  – expiry (unix epoch)
    """
    settings = settings or get_settings()
    payload = {
        "sub": str(sub),
        "role": to_role_str(role),
        "exp": _now() + (expires_in or settings.ACCESS_TOKEN_EXPIRE_SECONDS),
    }
    payload.update(extra_claims)
    return jwt.encode(payload, _signing_key(settings), algorithm=settings.ALGORITHM)


def decode_token(token: str, settings: Optional[Settings] = None) -> dict:
    """Verify *token* and return its payload."""
    settings = settings or get_settings()
    try:
        payload: dict = jwt.decode(token, _signing_key(settings), algorithms=[settings.ALGORITHM])
    except JWTError as exc:
        raise AuthenticationError("Invalid token") from exc
    return payload


def app_settings(req: Request) -> Settings:
    return getattr(req.app.state, "settings", None) or get_settings()


# ---------------------------------------------------------------------------
#  Dependencies
# ---------------------------------------------------------------------------
def _extract_token(req: Request) -> str | None:
    """Return JWT from the Authorization header or the access_token cookie."""
    auth: str | None = req.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth.split(" ", 1)[1]
    return req.cookies.get("access_token")


async def current_user(req: Request) -> dict:
    """FastAPI dependency returning the JWT payload or raises 401."""
    token = _extract_token(req)
    if not token:
        raise AuthenticationError("Missing credentials")
    return decode_token(token, app_settings(req))


async def current_actor(user: Annotated[dict, Depends(current_user)]) -> Actor:
    return actor_from_token(user)


def actor_from_token(payload: dict) -> Actor:
    if not payload.get("sub"):
        raise AuthenticationError("Invalid token")
    return Actor(id=str(payload["sub"]), role=payload.get("role") or Role.user.value)


ActorDep = Annotated[Actor, Depends(current_actor)]


def role_required(*allowed: "str | Role | Iterable[str | Role]") -> Callable[[dict], dict]:
    """Return a dependency that checks *current_user* role is within *allowed*.

    Usage:
        @router.get("/desk", dependencies=[Depends(role_required("rental", "admin"))])
        async def desk_only():
            ...
    """
    if len(allowed) == 1 and isinstance(allowed[0], (list, tuple, set, frozenset)):
        allowed = tuple(allowed[0])
    allowed_set = {to_role_str(a) for a in allowed}

    async def _dep(user: Annotated[dict, Depends(current_user)]):
        role: str | None = user.get("role")
        if role not in allowed_set:
            raise AuthorizationError("Forbidden")
        return user

    return _dep


# ---------------------------------------------------------------------------
#  Scheduled trigger authentication
# ---------------------------------------------------------------------------

def authorize_cron_header(authorization: Optional[str], secret: Optional[str]) -> None:
    """Accept only ``Bearer <secret>``; deny everything when no secret is set."""
    if not secret:
        logger.warning("Rejected cron trigger: no CRON_SECRET or AUTH_SECRET configured")
        raise ConfigurationError()
    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise AuthenticationError()


async def require_cron_secret(
    req: Request,
    authorization: Optional[str] = Header(None),
) -> None:
    """FastAPI dependency guarding the cron trigger endpoints."""
    authorize_cron_header(authorization, app_settings(req).CRON_SECRET)
