from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional


def _require_text(value, field_name: str, strip: bool = True):
    if value is None or not str(value).strip():
        raise ValueError(f"{field_name} is required")
    return str(value).strip() if strip else str(value)


class AccountInDB(BaseModel):
    """Full account record as held by the credential store."""
    id: str
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str = ""
    password_hash: str
    refresh_token: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_public(self) -> "AccountPublic":
        return AccountPublic(
            id=self.id,
            username=self.username,
            email=self.email,
            full_name=self.full_name,
            avatar=self.avatar,
            cover_image=self.cover_image,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class AccountPublic(BaseModel):
    """Projection of an account safe to return to clients."""
    id: str = Field(alias="_id")
    username: str
    email: str
    full_name: str = Field(alias="fullName")
    avatar: str
    cover_image: str = Field(default="", alias="coverImage")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    class Config:
        populate_by_name = True
        extra = "ignore"


class RegisterRequest(BaseModel):
    full_name: str = Field(alias="fullName")
    email: EmailStr
    username: str
    password: str

    class Config:
        populate_by_name = True

    @field_validator("full_name", "username", "password", mode="before")
    @classmethod
    def _not_blank(cls, v, info):
        return _require_text(v, info.field_name, strip=info.field_name != "password")

    @field_validator("email", mode="before")
    @classmethod
    def _email_not_blank(cls, v):
        return _require_text(v, "email").lower()

    @field_validator("username")
    @classmethod
    def _lower_username(cls, v: str) -> str:
        return v.lower()


class LoginRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str

    @field_validator("password", mode="before")
    @classmethod
    def _password_not_blank(cls, v):
        return _require_text(v, "password", strip=False)

    @model_validator(mode="after")
    def _identifier_present(self):
        if not (self.username or "").strip() and not (self.email or "").strip():
            raise ValueError("username or email is required")
        return self

    @property
    def identifier(self) -> str:
        value = (self.username or "").strip() or (self.email or "").strip()
        return value.lower()


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")

    class Config:
        populate_by_name = True


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(alias="oldPassword")
    new_password: str = Field(alias="newPassword")

    class Config:
        populate_by_name = True

    @field_validator("old_password", "new_password", mode="before")
    @classmethod
    def _not_blank(cls, v, info):
        return _require_text(v, info.field_name, strip=False)


class UpdateAccountRequest(BaseModel):
    full_name: str = Field(alias="fullName")
    email: EmailStr

    class Config:
        populate_by_name = True

    @field_validator("full_name", mode="before")
    @classmethod
    def _name_not_blank(cls, v):
        return _require_text(v, "fullName")

    @field_validator("email", mode="before")
    @classmethod
    def _email_not_blank(cls, v):
        return _require_text(v, "email").lower()


class SessionTokens(BaseModel):
    """Result of a login or refresh."""
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    user: Optional[AccountPublic] = None

    class Config:
        populate_by_name = True
