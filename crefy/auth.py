import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from passlib.context import CryptContext
from jose import JWTError, jwt

from . import config
from .access import same_address

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ADMIN_ROLE = "admin"
USER_ROLE = "user"

# pbkdf2_sha256 has no 72-byte input limit and no native backend to version-match
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# Password utilities
def verify_password(plain_password: str, hashed: str) -> bool:
    return pwd_context.verify(plain_password, hashed)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

# JWT utilities
def create_access_token(data: dict, expires_delta=None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=ALGORITHM)

def decode_access_token(token: str):
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

# Wallet signatures
def generate_nonce() -> str:
    # always 8 digits
    return str(10_000_000 + secrets.randbelow(90_000_000))

def recover_signer(message: str, signature: str) -> Optional[str]:
    """Address that signed ``message`` as an EIP-191 personal message, or None."""
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as exc:  # malformed signatures surface as assorted ValueError/TypeError subclasses
        logger.info("Could not recover signer: %s", exc)
        return None

def wallet_token(wallet_address: str) -> str:
    return create_access_token({"sub": wallet_address, "role": USER_ROLE, "wallet_address": wallet_address})

def admin_token(email: str) -> str:
    return create_access_token({"sub": email, "role": ADMIN_ROLE})

# Callers
@dataclass(frozen=True)
class Caller:
    subject: str
    role: str
    wallet_address: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @classmethod
    def from_claims(cls, claims: dict) -> Optional["Caller"]:
        subject = claims.get("sub")
        if not subject:
            return None
        return cls(
            subject=str(subject),
            role=str(claims.get("role") or USER_ROLE).lower(),
            wallet_address=claims.get("wallet_address"),
        )

def has_company_permission(caller: Optional[Caller], company) -> bool:
    """Platform admins manage every company; a wallet manages the company it administers."""
    if caller is None:
        return False
    if caller.is_admin:
        return True
    return same_address(caller.wallet_address, company.admin_address)
