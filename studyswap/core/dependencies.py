"""
FastAPI dependencies - the authorization gate.
Challenge: Resolve the bearer token to an Identity once; services never see credentials.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from studyswap.db.session import DbSession
from studyswap.db.repositories.user_repository import UserRepository
from studyswap.core.security import Identity, decode_access_token

security = HTTPBearer(auto_error=False)


async def get_current_identity(
    session: DbSession,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Identity:
    """Resolve JWT to the caller's identity. Raises 401 if missing, invalid or inactive."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_access_token(credentials.credentials)
    if not payload or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    repo = UserRepository(session)
    user = await repo.get_by_id(int(payload["sub"]))
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return Identity(user_id=user.id, role=user.role)


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
