"""Session tokens, wallet signature checks, and the explicit caller context."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from xrpl.core.keypairs import derive_classic_address, is_valid_message

from zerogate.config import get_settings
from zerogate.models.enums import IdentityRole
from zerogate.services.errors import Unauthorized, Forbidden


@dataclass(frozen=True)
class ActorContext:
    """Who is calling. Passed explicitly to every transition."""
    identity_id: str
    wallet_address: str
    role: IdentityRole
    account_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == IdentityRole.ADMIN

    def require_admin(self, what: str) -> None:
        if not self.is_admin:
            raise Forbidden(f"Only admins can {what}")


def create_session_token(identity_id: str, claims: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    exp_minutes = expires_minutes or settings.session_token_minutes
    now = datetime.now(timezone.utc)
    payload = {
        "sub": identity_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_session_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise Unauthorized("Invalid or expired session token")


def verify_wallet_signature(wallet_address: str, message: str, signature: str, public_key: str) -> bool:
    """
    True if `signature` (hex) over the UTF-8 `message` was made by the key
    behind `public_key`, and that key derives `wallet_address`.
    """
    if not (message and signature and public_key):
        return False
    try:
        if derive_classic_address(public_key) != wallet_address:
            return False
        return is_valid_message(message.encode("utf-8"), bytes.fromhex(signature), public_key)
    except ValueError:
        # malformed hex or key
        return False
