from typing import Optional

from fastapi import Depends, Header, Request

from economist_ai.exception import AuthError
from orchestrator.chat_orchestrator import Caller
from orchestrator.service_container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_optional_caller(
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> Optional[Caller]:
    """Chat endpoints report missing credentials as plain text, so resolve leniently."""
    token = _bearer(authorization)
    if token is None:
        return None
    return Caller(token=token, user_id=(x_user_id or "").strip() or None)


def get_caller(caller: Optional[Caller] = Depends(get_optional_caller)) -> Caller:
    if caller is None:
        raise AuthError("Unauthorized", details="Missing or malformed bearer token")
    if not caller.user_id:
        raise AuthError("Unauthorized", details="Missing X-User-Id header")
    return caller
