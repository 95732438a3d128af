"""Actor resolution for authenticated routes.

Tokens are verified upstream by the API Gateway JWT authorizer, which
forwards the caller's Cognito subject in the x-user-sub header. Routes
resolve that subject to a marketplace Actor through the ProfileDirectory.
"""

from collections.abc import Callable

from fastapi import Depends, Header

from marketplace.models import Actor, AuthorizationError, ErrorCode, UserRole
from marketplace.services import ProfileDirectory
from marketplace_api.dependencies import get_profile_directory

USER_SUB_HEADER = "x-user-sub"


def get_current_actor(
    x_user_sub: str | None = Header(default=None, alias=USER_SUB_HEADER),
    directory: ProfileDirectory = Depends(get_profile_directory),
) -> Actor:
    """Resolve the authenticated caller.

    Raises:
        AuthorizationError: AUTH_REQUIRED (401) if the header is missing or
            the subject is unknown.
    """
    if not x_user_sub:
        raise AuthorizationError(ErrorCode.AUTH_REQUIRED)
    actor = directory.get_actor_by_subject(x_user_sub)
    if actor is None:
        raise AuthorizationError(ErrorCode.AUTH_REQUIRED, message="Unknown user")
    return actor


def require_role(*roles: UserRole) -> Callable[..., Actor]:
    """Dependency factory restricting a route to the given roles (403 otherwise)."""

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            allowed = ", ".join(role.value for role in roles)
            raise AuthorizationError(
                details={"required_roles": [role.value for role in roles]},
                message=f"This action requires role: {allowed}",
            )
        return actor

    return dependency
