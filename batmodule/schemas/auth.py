from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    first_name: str = Field(alias="firstName", min_length=2, max_length=100)
    last_name: str = Field(alias="lastName", min_length=2, max_length=100)
    company_name: str | None = Field(default=None, alias="companyName", max_length=255)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    remember_me: bool = Field(default=False, alias="rememberMe")


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(alias="currentPassword", min_length=1)
    new_password: str = Field(alias="newPassword", min_length=6)


class DeleteAccountRequest(BaseModel):
    confirm: bool = False


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    email: str
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    company_name: str | None = Field(default=None, alias="companyName")
    created_at: datetime | None = Field(default=None, alias="createdAt")


class AuthResponse(BaseModel):
    message: str
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse


class CsrfTokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    csrf_token: str | None = Field(default=None, alias="csrfToken")


class MessageResponse(BaseModel):
    message: str
