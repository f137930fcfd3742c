from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

# bcrypt only hashes the first 72 bytes and refuses longer input.
MAX_PASSWORD_BYTES = 72


class RegisterIn(BaseModel):
    username: str = Field(min_length=3, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=72)

    @field_validator("password")
    @classmethod
    def _password_fits_bcrypt(cls, v: str) -> str:
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes in UTF-8")
        return v


class LoginIn(BaseModel):
    email: str
    password: str


class TokenUserOut(BaseModel):
    id: str
    username: str


class TokenOut(BaseModel):
    token: str
    token_type: str = "Bearer"
    expires_at: int
    user: TokenUserOut


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str
    role: str
    is_active: bool


class ClaimsOut(BaseModel):
    sub: str
    username: str
    email: str
    platform_role: str
    locations: dict[str, str]
    leagues: dict[str, str]
    teams: dict[str, str]
    iat: int
    exp: int
