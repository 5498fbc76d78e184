from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=120)
    real_name: str = Field(min_length=1, max_length=180)
    email: str
    password: str = Field(min_length=1)
    role: str = "User"

class UserUpdate(BaseModel):
    username: Optional[str] = None
    real_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None

class UserProfileUpdate(BaseModel):
    real_name: str = Field(min_length=1, max_length=180)
    avatar_url: Optional[str] = None

class UserLogin(BaseModel):
    username: str
    password: str

class UserOut(BaseModel):
    id: int
    username: str
    real_name: str
    email: str
    role: str
    last_login: Optional[datetime] = None
    is_2fa_enabled: bool = False
    sso_provider: Optional[str] = None
    avatar_url: Optional[str] = None

    class Config:
        from_attributes = True


class LoginResultOut(BaseModel):
    access_token: Optional[str] = None
    token_type: str = "bearer"
    requires_2fa: bool = False
    requires_2fa_setup: bool = False
    pre_auth_token: Optional[str] = None
    user: UserOut


class TwoFactorVerifyIn(BaseModel):
    pre_auth_token: str
    code: str


class TwoFactorCodeIn(BaseModel):
    code: str


class TwoFactorSetupOut(BaseModel):
    secret: str
    otpauth_url: str


class RoleOptionOut(BaseModel):
    code: str
    label: str
