from typing import Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    email: str = Field(max_length=254)
    password: str = Field(max_length=128)
    display_name: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: str = Field(max_length=254)
    password: str = Field(max_length=128)


class IdentityOut(BaseModel):
    uid: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    provider: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: IdentityOut


class PopupSignInRequest(BaseModel):
    credential: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class RedirectResponseOut(BaseModel):
    redirect_url: str
