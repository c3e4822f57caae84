from dataclasses import dataclass, field

from fastapi import HTTPException, status
from jose import JWTError, jwt
from starlette.requests import Request

from leadflow.core.config import get_settings


@dataclass
class AuthUser:
    """Caller identity decoded from the bearer token.

    Role-based lead visibility is resolved from the database, not from token
    claims, so only the identifiers are carried here.
    """

    user_id: int
    vendor_id: int
    roles: list[str] = field(default_factory=list)


async def get_current_user(request: Request) -> AuthUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing bearer token")

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    try:
        user_id = int(payload["sub"])
        vendor_id = int(payload["vendor_id"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="token is missing user or vendor claims")

    roles = payload.get("roles", [])
    if not isinstance(roles, list):
        roles = []
    return AuthUser(user_id=user_id, vendor_id=vendor_id, roles=[str(role) for role in roles])
