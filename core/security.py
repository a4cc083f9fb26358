"""
Security utilities for password hashing and JWT token handling.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from passlib.context import CryptContext
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from core.config import settings
from core.exceptions import AuthenticationException
from core.logging import security_logger
from db_config import get_async_db
from models.models import User, UserRoleEnum, UserSession

# Initialize logger
logger = security_logger

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# HTTP Bearer token scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against its hash.

    Args:
        plain_password: The plain text password
        hashed_password: The hashed password to verify against

    Returns:
        bool: True if password matches, False otherwise
    """
    try:
        result = pwd_context.verify(plain_password, hashed_password)
        logger.debug("Password verification completed", success=result)
        return result
    except ValueError as e:
        logger.error("Password verification error", error=str(e))
        return False


def get_password_hash(password: str) -> str:
    """Hash a plain password."""
    hashed = pwd_context.hash(password)
    logger.debug("Password hash generated successfully")
    return hashed


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: The data to encode in the token
        expires_delta: Optional custom expiration time

    Returns:
        str: The encoded JWT token
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.jwt_access_token_expire_minutes)

    # jti keeps tokens issued in the same second distinct
    to_encode.update({"exp": expire, "iat": now, "jti": uuid.uuid4().hex})
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    logger.info("Access token created",
               username=data.get("sub"),
               expires_at=expire.isoformat())
    return encoded_jwt


def verify_token(token: str) -> Optional[dict]:
    """Decode a JWT token, returning None if it is invalid or expired."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        logger.debug("Token verified successfully", username=payload.get("sub"))
        return payload
    except JWTError as e:
        logger.warning("Token verification failed", error=str(e))
        return None


async def get_current_user(
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_db)
) -> User:
    """
    Get the current user from the JWT token.

    Args:
        token: The JWT token from the Authorization header
        db: Database session

    Returns:
        User: The current user if authentication is successful

    Raises:
        AuthenticationException: If authentication fails
    """
    if token is None:
        raise AuthenticationException("Not authenticated")

    payload = verify_token(token.credentials)
    if payload is None:
        raise AuthenticationException("Could not validate credentials")

    username = payload.get("sub")
    if username is None:
        logger.warning("Token missing username claim")
        raise AuthenticationException("Could not validate credentials")

    # Find the user
    user_result = await db.execute(select(User).where(User.username == username))
    user = user_result.scalar_one_or_none()
    if user is None:
        logger.warning("User not found for token", username=username)
        raise AuthenticationException("Could not validate credentials")

    # Check if session is still valid
    session_stmt = select(UserSession).where(
        UserSession.user_id == user.id,
        UserSession.session_token == token.credentials,
        or_(
            UserSession.expires_at > datetime.now(timezone.utc),
            UserSession.expires_at.is_(None)
        )
    )
    session_result = await db.execute(session_stmt)
    if session_result.scalar_one_or_none() is None:
        logger.warning("No valid session found", username=username, user_id=user.id)
        raise AuthenticationException("Session expired or invalidated. Please log in again.")

    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """
    Check if the current user is active.

    Raises:
        HTTPException: If user is not active
    """
    if not current_user.is_active:
        logger.warning("Inactive user attempted access",
                      username=current_user.username,
                      user_id=current_user.id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return current_user


async def get_current_admin_user(current_user: User = Depends(get_current_active_user)) -> User:
    """
    Check if the current user is an admin.

    Raises:
        HTTPException: If user is not an admin
    """
    if current_user.role != UserRoleEnum.admin:
        logger.warning("Non-admin user attempted admin action",
                      username=current_user.username,
                      user_id=current_user.id,
                      role=current_user.role.value)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return current_user
