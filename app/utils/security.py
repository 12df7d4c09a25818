# app/utils/security.py
import secrets
import string
from datetime import datetime, timedelta
from typing import Optional

from jose import jwt
from passlib.context import CryptContext

from app.config.settings import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TEMPORARY_PASSWORD_SYMBOLS = "#@!$%"
EXTERNAL_PASSWORD_SYMBOLS = "#@!$%&*"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def generate_temporary_password(length: int = 12, symbols: str = TEMPORARY_PASSWORD_SYMBOLS) -> str:
    """
    Generate a random password that contains at least one uppercase letter,
    one lowercase letter, one digit and one symbol, in shuffled order.
    """
    rng = secrets.SystemRandom()
    alphabet = string.ascii_letters + string.digits + symbols
    chars = [
        rng.choice(string.ascii_uppercase),
        rng.choice(string.ascii_lowercase),
        rng.choice(string.digits),
        rng.choice(symbols),
    ]
    chars += [rng.choice(alphabet) for _ in range(max(length - len(chars), 0))]
    rng.shuffle(chars)
    return "".join(chars)


def generate_external_password() -> str:
    """Longer password used for external-user resets (no expiry)"""
    return generate_temporary_password(length=16, symbols=EXTERNAL_PASSWORD_SYMBOLS)


def temporary_password_expiry() -> datetime:
    return datetime.utcnow() + timedelta(minutes=settings.TEMPORARY_PASSWORD_MINUTES)
