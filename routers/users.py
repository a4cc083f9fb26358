"""
Router for User Management (excluding auth operations).
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import or_, select

from core.exceptions import ResourceNotFoundException
from core.logging import get_logger
from core.security import get_current_active_user, get_current_admin_user
from db_config import get_async_db
from models.models import User, UserRoleEnum
from schemas.user import UserRead

router = APIRouter(prefix="/users", tags=["Users"])

logger = get_logger("users")


async def _get_user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise ResourceNotFoundException("User not found")
    return user


@router.get("/me", response_model=UserRead)
async def get_current_user_profile(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db)
):
    """Get current user's profile, including trial fields."""
    result = await db.execute(
        select(User).where(User.id == current_user.id).execution_options(populate_existing=True)
    )
    return UserRead.model_validate(result.scalar_one())


@router.get("/", response_model=List[UserRead])
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    search: Optional[str] = Query(None, description="Search by username, name, or email"),
    role: Optional[UserRoleEnum] = Query(None, description="Filter by user role"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
    has_used_trial: Optional[bool] = Query(None, description="Filter by trial usage"),
    current_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db)
):
    """List all users (admin only)."""
    stmt = select(User)

    if search:
        stmt = stmt.where(or_(
            User.username.ilike(f"%{search}%"),
            User.first_name.ilike(f"%{search}%"),
            User.last_name.ilike(f"%{search}%"),
            User.email.ilike(f"%{search}%")
        ))
    if role:
        stmt = stmt.where(User.role == role)
    if is_active is not None:
        stmt = stmt.where(User.is_active == is_active)
    if has_used_trial is not None:
        stmt = stmt.where(User.has_used_trial == has_used_trial)

    stmt = stmt.order_by(User.created_at.desc(), User.id.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return [UserRead.model_validate(user) for user in result.scalars().all()]


@router.get("/{user_id}", response_model=UserRead)
async def get_user_by_id(
    user_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db)
):
    """Get user by ID (admin only)."""
    return UserRead.model_validate(await _get_user_or_404(db, user_id))


@router.put("/{user_id}/role")
async def update_user_role(
    user_id: int,
    new_role: UserRoleEnum,
    current_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db)
):
    """Update user role (admin only)."""
    user = await _get_user_or_404(db, user_id)

    # Prevent self-demotion from admin
    if current_user.id == user_id and new_role != UserRoleEnum.admin:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot change your own admin role")

    user.role = new_role
    await db.commit()
    logger.info("User role updated", user_id=user_id, new_role=new_role.value, admin_id=current_user.id)

    return {"message": f"User role updated to {new_role.value}", "user_id": user_id, "new_role": new_role.value}


@router.put("/{user_id}/status")
async def update_user_status(
    user_id: int,
    is_active: bool,
    current_user: User = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_async_db)
):
    """Update user active status (admin only)."""
    user = await _get_user_or_404(db, user_id)

    # Prevent self-deactivation
    if current_user.id == user_id and not is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot deactivate your own account")

    user.is_active = is_active
    await db.commit()

    status_text = "activated" if is_active else "deactivated"
    logger.info(f"User {status_text}", user_id=user_id, admin_id=current_user.id)
    return {"message": f"User {status_text} successfully", "user_id": user_id, "is_active": is_active}
