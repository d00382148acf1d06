"""Password hashing."""
from passlib.context import CryptContext

from .config import get_settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _peppered(password: str) -> str:
    return get_settings().auth_pepper + password


def hash_password(password: str) -> str:
    """Hash a plaintext password with the configured pepper."""
    return pwd_context.hash(_peppered(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plaintext password against a stored hash."""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(_peppered(plain_password), hashed_password)
    except ValueError:
        # Stored value is not a recognized hash format
        return False
