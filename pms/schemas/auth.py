from pydantic import BaseModel


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    rtk: str


class TokenResponse(BaseModel):
    atk: str
    rtk: str
    user: dict
