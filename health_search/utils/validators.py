"""
Client identity for rate limiting

The service has no authorization. A bearer token only decides which quota
bucket a request lands in; an invalid token falls back to the remote address.
"""
from jose import JWTError, jwt
from fastapi import Request
from typing import Optional
import logging

logger = logging.getLogger(__name__)


def user_from_token(authorization: Optional[str], secret: str, algorithm: str) -> Optional[str]:
    """
    Subject of a valid bearer JWT

    Returns:
        The token's `sub` claim, or None when absent or invalid
    """
    if not secret or not authorization or not authorization.startswith("Bearer "):
        return None

    token = authorization[len("Bearer "):].strip()
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        logger.debug(f"JWT ignored for client identity: {e}")
        return None

    subject = payload.get("sub")
    return str(subject) if subject else None


def resolve_client_key(request: Request, jwt_secret: str = "", jwt_algorithm: str = "HS256") -> str:
    """`user:<sub>` for an authenticated caller, else `ip:<remote address>`"""
    user_id = user_from_token(request.headers.get("authorization"), jwt_secret, jwt_algorithm)
    if user_id:
        return f"user:{user_id}"

    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"
