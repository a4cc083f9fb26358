"""
Authentication routes for user registration, login, and session management.
"""
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    get_current_user,
    get_current_active_user,
)
from core.config import settings
from core.exceptions import AuthenticationException
from core.logging import get_logger
from core.rate_limiting import rate_limit
from db_config import get_async_db
from models.models import User, UserSession, UserRoleEnum
from schemas.user import UserCreate, UserRead, UserUpdate
from schemas.auth import LoginRequest, LoginResponse, RegisterResponse, Token

router = APIRouter(prefix="/auth", tags=["Authentication"])

# Initialize logger for auth operations
logger = get_logger("auth")


def _user_summary(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "role": user.role.value,
        "is_active": user.is_active,
        "is_verified": user.is_verified,
        "has_used_trial": user.has_used_trial,
        "created_at": user.created_at,
        "last_login": user.last_login,
    }


async def _store_session(db: AsyncSession, user: User, access_token: str, expires_delta: timedelta):
    """Keep exactly one session row per user, holding the newest token."""
    now = datetime.now(timezone.utc)
    result = await db.execute(select(UserSession).where(UserSession.user_id == user.id))
    session = result.scalar_one_or_none()
    if session:
        session.session_token = access_token
        session.updated_at = now
        session.expires_at = now + expires_delta
        logger.debug("Updated existing user session", username=user.username, user_id=user.id)
    else:
        db.add(UserSession(user_id=user.id, session_token=access_token, expires_at=now + expires_delta))
        logger.debug("Created new user session", username=user.username, user_id=user.id)


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(rate_limit("auth"))])
async def register_user(user_data: UserCreate, db: AsyncSession = Depends(get_async_db)):
    """
    Register a new user.

    - **username**: Must be unique, 3-50 characters
    - **email**: Must be unique and valid email format
    - **password**: Minimum 8 characters
    - **first_name**: User's first name
    - **last_name**: User's last name
    """
    logger.info("User registration attempt", username=user_data.username)

    result = await db.execute(select(User.id).where(User.username == user_data.username))
    if result.scalar_one_or_none() is not None:
        logger.warning("Registration failed - username already exists", username=user_data.username)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already registered")

    result = await db.execute(select(User.id).where(User.email == user_data.email))
    if result.scalar_one_or_none() is not None:
        logger.warning("Registration failed - email already exists", username=user_data.username)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    db_user = User(
        username=user_data.username,
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        email=user_data.email,
        password_hash=get_password_hash(user_data.password),
        role=UserRoleEnum.user,
        is_active=True,
        is_verified=False,
        has_used_trial=False,
    )

    try:
        db.add(db_user)
        await db.commit()
        await db.refresh(db_user)
    except IntegrityError as e:
        await db.rollback()
        logger.error("Registration failed - database integrity error",
                    username=user_data.username, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with this username or email already exists"
        )

    logger.info("User registered successfully", username=db_user.username, user_id=db_user.id)
    return RegisterResponse(message="User registered successfully", user=_user_summary(db_user))


@router.post("/login", response_model=LoginResponse, dependencies=[Depends(rate_limit("auth"))])
async def login_user(login_data: LoginRequest, db: AsyncSession = Depends(get_async_db)):
    """
    Login user and return JWT token.

    - **username**: Username or email address
    - **password**: User's password
    """
    logger.info("Login attempt", username_or_email=login_data.username)

    result = await db.execute(
        select(User).where(or_(User.username == login_data.username, User.email == login_data.username))
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.password_hash):
        logger.warning("Login failed - invalid credentials", username_or_email=login_data.username)
        raise AuthenticationException("Incorrect username/email or password")

    if not user.is_active:
        logger.warning("Login failed - account deactivated", username=user.username, user_id=user.id)
        raise AuthenticationException("Account is deactivated")

    access_token_expires = timedelta(minutes=settings.jwt_access_token_expire_minutes)
    access_token = create_access_token(data={"sub": user.username}, expires_delta=access_token_expires)

    user.last_login = datetime.now(timezone.utc)
    await _store_session(db, user, access_token, access_token_expires)
    await db.commit()

    logger.info("Login successful", username=user.username, user_id=user.id, role=user.role.value)

    return LoginResponse(
        access_token=access_token,
        token_type="bearer",
        user=_user_summary(user),
        expires_in=settings.jwt_access_token_expire_minutes * 60
    )


@router.post("/logout")
async def logout_user(current_user: User = Depends(get_current_active_user),
                      db: AsyncSession = Depends(get_async_db)):
    """
    Logout user by invalidating their session.
    """
    result = await db.execute(select(UserSession).where(UserSession.user_id == current_user.id))
    session = result.scalar_one_or_none()
    if session:
        await db.delete(session)
        await db.commit()
        logger.info("User session deleted", username=current_user.username, user_id=current_user.id)
    else:
        logger.warning("No session found for logout", username=current_user.username, user_id=current_user.id)

    return {"message": "Successfully logged out"}


@router.get("/me", response_model=UserRead)
async def get_current_user_info(current_user: User = Depends(get_current_active_user)):
    """
    Get current authenticated user's information.
    """
    return current_user


@router.put("/me", response_model=UserRead)
async def update_current_user(
    user_update: UserUpdate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db)
):
    """
    Update current authenticated user's information.
    """
    update_data = user_update.model_dump(exclude_unset=True)

    if "email" in update_data:
        result = await db.execute(
            select(User.id).where(User.email == update_data["email"], User.id != current_user.id)
        )
        if result.scalar_one_or_none() is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    for field, value in update_data.items():
        setattr(current_user, field, value)

    current_user.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(current_user)

    logger.info("User profile updated", username=current_user.username, user_id=current_user.id)
    return current_user


@router.post("/refresh", response_model=Token)
async def refresh_token(current_user: User = Depends(get_current_user),
                        db: AsyncSession = Depends(get_async_db)):
    """
    Refresh JWT token for current user.
    """
    access_token_expires = timedelta(minutes=settings.jwt_access_token_expire_minutes)
    access_token = create_access_token(data={"sub": current_user.username}, expires_delta=access_token_expires)

    await _store_session(db, current_user, access_token, access_token_expires)
    await db.commit()

    return Token(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60
    )
