"""Operator identity from bearer JWTs."""
from calendar import timegm
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from rcm.config.settings import (
    get_default_operator_id,
    get_jwt_access_token_expire_minutes,
    get_jwt_algorithm,
    get_jwt_secret,
    is_auth_required,
)
from rcm.utils.clock import utcnow
from rcm.utils.errors import UnauthorizedError
from rcm.utils.logger import bind_operator_context

security = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=get_jwt_access_token_expire_minutes()))
    # JWT exp claim must be a numeric timestamp
    to_encode.update({"exp": timegm(expire.utctimetuple())})
    return jwt.encode(to_encode, get_jwt_secret(), algorithm=get_jwt_algorithm())


def decode_operator_id(token: str) -> str:
    """
    Return the `sub` claim of a token.

    Raises:
        UnauthorizedError: If the token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(token, get_jwt_secret(), algorithms=[get_jwt_algorithm()])
    except JWTError:
        raise UnauthorizedError("Could not validate credentials") from None
    operator_id = payload.get("sub")
    if not operator_id:
        raise UnauthorizedError("Could not validate credentials")
    return str(operator_id)


async def get_current_operator(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_operator_id: Optional[str] = Header(None, alias="X-Operator-Id"),
) -> str:
    """
    Identify the calling operator (who is also the provider whose ERAs are served).

    A bearer token always wins. Without one, REQUIRE_AUTH=true rejects the
    request; otherwise the `X-Operator-Id` header (or DEFAULT_OPERATOR_ID) is used.
    """
    if credentials is not None:
        operator_id = decode_operator_id(credentials.credentials)
    elif is_auth_required():
        raise UnauthorizedError("Not authenticated")
    else:
        operator_id = (x_operator_id or "").strip() or get_default_operator_id()

    bind_operator_context(operator_id)
    return operator_id
