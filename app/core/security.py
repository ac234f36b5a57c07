from jose import JWTError, jwt
from datetime import datetime, timedelta
from passlib.context import CryptContext
from app.core.config import settings
import hashlib
import hmac
import uuid

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
ALGORITHM = "HS256"

ACCESS_TOKEN_TYPE = "access"
SHARE_TOKEN_TYPE = "share"


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


# Share passwords are stored as an unsalted SHA-256 digest.
def hash_share_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def verify_share_password(plain: str, hashed: str) -> bool:
    return hmac.compare_digest(hash_share_password(plain), hashed)


def _encode(subject: str, token_type: str, minutes: int) -> str:
    expire = datetime.utcnow() + timedelta(minutes=minutes)
    jti = str(uuid.uuid4())
    payload = {"sub": subject, "exp": expire, "jti": jti, "typ": token_type}
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def create_access_token(subject: str, expires_minutes: int | None = None) -> str:
    return _encode(
        subject,
        ACCESS_TOKEN_TYPE,
        expires_minutes or settings.access_token_expire_minutes,
    )


def create_share_token(share_id: str, expires_minutes: int | None = None) -> str:
    """Short-lived proof that the caller knew a share's password."""
    return _encode(
        share_id,
        SHARE_TOKEN_TYPE,
        expires_minutes or settings.share_token_expire_minutes,
    )


def decode_token(token: str) -> dict:
    payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    return payload


def share_token_matches(token: str, share_id: str) -> bool:
    try:
        payload = decode_token(token)
    except JWTError:
        return False
    return payload.get("typ") == SHARE_TOKEN_TYPE and payload.get("sub") == share_id
