"""
Authentication-related Pydantic schemas.
"""
from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class Token(BaseModel):
    """Access token schema."""
    access_token: str
    token_type: str
    expires_in: int = Field(..., description="Token expiration time in seconds")


class TokenData(BaseModel):
    """Token payload schema."""
    username: Optional[str] = None


class LoginRequest(BaseModel):
    """Login request schema."""
    username: str = Field(..., description="Username or email")
    password: str = Field(..., min_length=8, description="Password")


class LoginResponse(BaseModel):
    """Login response schema."""
    access_token: str
    token_type: str
    user: Dict[str, Any]
    expires_in: int = Field(..., description="Token expiration time in seconds")


class RegisterResponse(BaseModel):
    """Registration response schema."""
    message: str
    user: Dict[str, Any]
