from __future__ import annotations
from typing import Any, Dict
from fastapi import Depends, Header, HTTPException, Request, status
import time
import httpx
import jwt

from .core.config import get_settings
from .core.redis import get_redis
from .core.rotation import RotationScheduler
from .errors import DuplicateAttendance, Expired, Full, InvalidSignature, NotStarted, UnknownEvent, VerifierError
from .services.ledger import Ledger
from .services.profiles import ProfileStore, Role, resolve_role

settings = get_settings()

_JWKS: Dict[str, Any] | None = None
_JWKS_TS: float = 0.0
_JWKS_TTL: int = 3600

async def fetch_jwks() -> Dict[str, Any]:
    global _JWKS, _JWKS_TS
    now = time.time()
    if _JWKS is None or (now - _JWKS_TS) > _JWKS_TTL:
        async with httpx.AsyncClient() as client:
            r = await client.get(settings.auth_jwks_url, timeout=5.0)
            r.raise_for_status()
            _JWKS = r.json()
            _JWKS_TS = now
    return _JWKS

async def get_signing_key():
    from jwt.algorithms import RSAAlgorithm
    jwks = await fetch_jwks()
    key = jwks["keys"][0]
    return RSAAlgorithm.from_jwk(key)

async def get_claims(authorization: str | None = Header(default=None)) -> Dict[str, Any]:
    """Claims of the caller; `sub` is the caller's wallet identity."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    token = authorization.split(" ", 1)[1].strip()
    key = await get_signing_key()
    try:
        payload = jwt.decode(token, key=key, algorithms=["RS256"], options={"verify_aud": False})
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    if "sub" not in payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    return payload

def get_role(claims: dict = Depends(get_claims)) -> Role:
    return resolve_role(claims, admin_identity=settings.admin_identity)

def require_admin(role: Role = Depends(get_role)) -> Role:
    if role is not Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return role

# --- process-owned collaborators (built in the app lifespan) ---

def get_ledger(request: Request) -> Ledger:
    return request.app.state.ledger

def get_rotation(request: Request) -> RotationScheduler:
    return request.app.state.rotation

def get_profiles() -> ProfileStore:
    return ProfileStore(get_redis())

# --- verifier errors -> HTTP ---

_STATUS_BY_ERROR: dict[type[VerifierError], int] = {
    UnknownEvent: status.HTTP_404_NOT_FOUND,
    NotStarted: status.HTTP_400_BAD_REQUEST,
    Expired: status.HTTP_400_BAD_REQUEST,
    InvalidSignature: status.HTTP_403_FORBIDDEN,
    DuplicateAttendance: status.HTTP_409_CONFLICT,
    Full: status.HTTP_409_CONFLICT,
}

def verifier_http_error(exc: VerifierError) -> HTTPException:
    code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=code, detail={"kind": exc.kind, "message": str(exc)})
