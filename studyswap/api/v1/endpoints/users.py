"""
User endpoints - registration, login and the current profile.
Challenge: Secure auth, validation, clear status codes.
"""

from fastapi import APIRouter, HTTPException, status

from studyswap.core.dependencies import CurrentIdentity
from studyswap.core.security import hash_password, create_access_token, verify_password
from studyswap.db.models.user import User
from studyswap.db.repositories.user_repository import UserRepository
from studyswap.db.session import DbSession
from studyswap.schemas.user import LoginRequest, UserCreate, UserResponse

router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(session: DbSession, data: UserCreate):
    """Create new user. Returns user without password."""
    repo = UserRepository(session)
    if await repo.get_by_email(data.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )
    user = User(
        email=data.email,
        hashed_password=hash_password(data.password),
        name=data.name,
    )
    user = await repo.add(user)
    return UserResponse.model_validate(user)


@router.post("/login")
async def login(session: DbSession, data: LoginRequest):
    """Authenticate and return JWT."""
    repo = UserRepository(session)
    user = await repo.get_by_email(data.email)
    if not user or not verify_password(data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    token = create_access_token(user.id, {"role": user.role})
    return {"access_token": token, "token_type": "bearer"}


@router.get("/me", response_model=UserResponse)
async def me(session: DbSession, identity: CurrentIdentity):
    user = await UserRepository(session).get_by_id(identity.user_id)
    return UserResponse.model_validate(user)
