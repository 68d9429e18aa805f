"""Wallet sign-in: verify the wallet, find or create its Account, issue a session."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from zerogate.config import Settings, get_settings
from zerogate.models.domain import Account, AuthIdentity
from zerogate.models.enums import AccountStatus, AccountType, IdentityRole, KycStatus
from zerogate.services.errors import Unauthorized, ValidationFailed
from zerogate.services.identity import create_session_token, verify_wallet_signature
from zerogate.services.persistence import PersistenceGateway

logger = logging.getLogger(__name__)

UNSIGNED_CONNECT_METHOD = "crossmark_connect"


@dataclass
class WalletLogin:
    account: Account
    identity: AuthIdentity
    is_new_user: bool
    session: Dict[str, Any]

    @property
    def needs_onboarding(self) -> bool:
        return self.account.status == AccountStatus.PENDING_ONBOARDING


class WalletAuthenticator:
    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.store = PersistenceGateway(db)
        self.settings = settings or get_settings()

    def authenticate(
        self,
        wallet_address: Optional[str],
        signature: Optional[str] = None,
        message: Optional[str] = None,
        public_key: Optional[str] = None,
        auth_method: Optional[str] = None,
        account_type: Optional[str] = None
    ) -> WalletLogin:
        if not wallet_address:
            raise ValidationFailed("Wallet address is required")

        unsigned_ok = auth_method == UNSIGNED_CONNECT_METHOD and self.settings.allow_unsigned_connect
        if not unsigned_ok and not verify_wallet_signature(wallet_address, message, signature, public_key):
            logger.warning("wallet signature rejected", extra={"wallet": wallet_address, "auth_method": auth_method})
            raise Unauthorized("Invalid wallet signature")

        account, is_new = self._find_or_create_account(wallet_address, account_type)
        identity = self._upsert_identity(account)

        claims = {
            "wallet": account.wallet_address,
            "role": identity.role.value,
            "account_id": account.id,
        }
        minutes = self.settings.session_token_minutes
        session = {
            "access_token": create_session_token(identity.id, claims, minutes),
            "token_type": "bearer",
            "expires_in": minutes * 60,
        }
        logger.info("wallet authenticated", extra={
            "wallet": wallet_address, "account_id": account.id, "new_user": is_new,
        })
        return WalletLogin(account=account, identity=identity, is_new_user=is_new, session=session)

    def _find_or_create_account(self, wallet_address: str, account_type: Optional[str]):
        account = self.store.find_account_by_wallet(wallet_address)
        if account is not None:
            return account, False

        try:
            kind = AccountType(account_type or AccountType.BUSINESS.value)
        except ValueError:
            raise ValidationFailed(f"Unknown account type: {account_type}")

        try:
            account = self.store.create_account(
                wallet_address=wallet_address,
                account_type=kind,
                status=AccountStatus.PENDING_ONBOARDING,
                kyc_status=KycStatus.NOT_STARTED if kind == AccountType.CONSUMER else None,
            )
        except IntegrityError:
            # Another sign-in for the same wallet won the insert
            account = self.store.find_account_by_wallet(wallet_address)
            if account is None:
                raise
            return account, False
        return account, True

    def _upsert_identity(self, account: Account) -> AuthIdentity:
        identity = self.store.find_identity_by_wallet(account.wallet_address)
        if identity is None:
            identity = AuthIdentity(
                wallet_address=account.wallet_address,
                email=f"{account.wallet_address.lower()}@{self.settings.wallet_email_domain}",
            )
        is_admin = account.wallet_address in self.settings.admin_wallets
        identity.role = IdentityRole.ADMIN if is_admin else IdentityRole.USER
        identity.account_id = account.id
        identity.account_status = account.status
        identity.credential_id = account.credential_id
        identity.last_login_at = datetime.utcnow()
        return self.store.save_identity(identity)
