from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from sqlalchemy.orm import Session

from shop.config import settings
from shop.dependencies import get_current_user
from shop.models import User, UserRole, get_db
from shop.services import auth_service

router = APIRouter()


class RegisterRequest(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(min_length=6)
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

    model_config = ConfigDict(
        json_schema_extra={"examples": [{"email": "user@example.com", "password": "secret1"}]},
    )


class UserResponse(BaseModel):
    id: int
    email: str
    name: str | None = None
    role: UserRole

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    token: str
    expires_in: int
    user: UserResponse


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(
        token=auth_service.create_access_token(user),
        expires_in=settings.JWT_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new customer",
)
def register(
    body: RegisterRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Create a customer account and return an access token."""
    user = auth_service.register_user(db, email=body.email, password=body.password, name=body.name)
    return _auth_response(user)


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Login and get an access token",
)
def login(
    body: LoginRequest,
    db: Annotated[Session, Depends(get_db)],
):
    return _auth_response(auth_service.authenticate(db, body.email, body.password))


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current authenticated user",
)
def me(
    current_user: Annotated[User, Depends(get_current_user)],
):
    return current_user
