"""
Schemas for user profiles
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class CreateProfileRequest(BaseModel):
    """Profile of a user who just signed up with the auth provider"""
    email: str = Field(..., description="Email address")
    name: Optional[str] = Field(None, max_length=100, description="Display name")


class UserProfile(BaseModel):
    """User profile with balances"""
    id: str = Field(..., description="User ID (auth provider subject)")
    email: str = Field(..., description="Email address")
    name: Optional[str] = Field(None, description="Display name")
    credits: int = Field(0, description="Legacy credits")
    wallet_balance: float = Field(0, description="Wallet balance in AED")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Update timestamp")

    class Config:
        from_attributes = True
