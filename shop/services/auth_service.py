import logging
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from shop.config import settings
from shop.errors import ValidationError
from shop.models import User, UserRole

logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user: User) -> str:
    """Signed access token; ``sub`` is the user id, role is informational only."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def register_user(db: Session, email: str, password: str, name: str) -> User:
    if db.query(User.id).filter(User.email == email).first() is not None:
        raise ValidationError("Email already registered")

    user = User(
        email=email,
        name=name,
        hashed_password=hash_password(password),
        role=UserRole.USER.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User registered successfully: %s", user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    # Same message for unknown email and wrong password.
    if user is None or not verify_password(password, user.hashed_password):
        raise ValidationError("Invalid email or password")

    logger.info("User logged in successfully: %s", user.id)
    return user
