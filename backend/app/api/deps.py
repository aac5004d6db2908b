"""FastAPI dependencies shared by the routers."""

from typing import Optional

from fastapi import Header, Request

from ..exceptions import Unauthenticated
from ..services.registry import AudioServices
from ..utils.roles import CurrentUser


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> CurrentUser:
    """Identity asserted by the authenticating proxy in front of the API.

    Swap this out with ``app.dependency_overrides`` to plug in another
    session resolver.
    """
    if not x_user_id:
        raise Unauthenticated("not authenticated")
    return CurrentUser(user_id=x_user_id, role=x_user_role or None)


def get_services(request: Request) -> AudioServices:
    return request.app.state.audio
