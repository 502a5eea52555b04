from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from farmbid.auctions import AuctionService
from farmbid.utils import log

logger = log.get_logger(__name__)

security = HTTPBearer()


def get_service(request: Request) -> AuctionService:
    return request.app.state.auction_service


async def current_user_get(request: Request, token: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """Resolve the caller's claims from the bearer token.

    With authentication disabled (local development only) the token itself
    is taken as the caller's user id.
    """
    if not getattr(request.app.state, "auth_enabled", True):
        return {"sub": token.credentials}

    auth_client = getattr(request.app.state, "auth_client", None)
    if auth_client is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No auth_client")

    payload = auth_client.decode_jwt(token.credentials)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return payload


async def require_authenticated(user: dict = Depends(current_user_get)) -> dict:
    return user


async def require_farmer(
    user: dict = Depends(current_user_get),
    service: AuctionService = Depends(get_service),
) -> dict:
    db_user = await service.users.get_user(user["sub"])
    if db_user is None or db_user.data.role != "farmer":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Farmer role required")
    return user


async def require_admin(
    user: dict = Depends(current_user_get),
    service: AuctionService = Depends(get_service),
) -> dict:
    """
    Admins are recognised by an 'admin' entry in the token's roles claim or
    by their marketplace user record.
    """
    roles = user.get("roles", [])
    if isinstance(roles, str):
        roles = [roles]
    if "admin" in roles:
        return user

    db_user = await service.users.get_user(user["sub"])
    if db_user is not None and db_user.data.role == "admin":
        return user

    logger.warning(f"User {user.get('sub')} attempted admin access without 'admin' role. Roles: {roles}")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Admin privileges required",
    )
