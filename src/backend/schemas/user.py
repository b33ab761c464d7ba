"""
User-related Pydantic schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):
    """Base user schema with common fields."""

    email: EmailStr
    username: str = Field(..., min_length=3, max_length=50)


class UserInDB(UserBase):
    """Authenticated user resolved from a bearer token (internal use)."""

    id: str
    display_name: Optional[str] = None
    is_active: bool = True
    is_verified: bool = False  # Verified-athlete badge
    is_admin: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
