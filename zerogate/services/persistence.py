"""
PersistenceGateway - typed reads and writes over the datastore.

Every write commits immediately; a SQLAlchemy failure rolls the session back
and surfaces as PersistenceFailed. Asset status changes only go through
transition_asset, which pairs the conditional update with its AuditEntry.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from zerogate.models.audit import AuditEntry
from zerogate.models.domain import (
    Account,
    AssetListing,
    AuthIdentity,
    CredentialRecord,
    VerificationApplication
)
from zerogate.models.enums import ApplicationKind, AssetStatus
from zerogate.services.errors import InvalidTransition, NotFound, PersistenceFailed

logger = logging.getLogger(__name__)


class PersistenceGateway:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self, what: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("datastore write failed", extra={"write": what, "error": str(e)})
            raise PersistenceFailed(f"Failed to {what}: {e}")

    def _save(self, row, what: str):
        self.db.add(row)
        self._commit(what)
        self.db.refresh(row)
        return row

    # ─────────────────────────────────────────────
    # ACCOUNTS
    # ─────────────────────────────────────────────

    def get_account(self, account_id: str) -> Account:
        account = self.db.get(Account, account_id)
        if not account:
            raise NotFound("Account not found")
        return account

    def find_account_by_wallet(self, wallet_address: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.wallet_address == wallet_address).first()

    def create_account(self, **fields) -> Account:
        """Insert; raises IntegrityError untouched so callers can reload on a wallet race."""
        account = Account(**fields)
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailed(f"Failed to create account: {e}")
        self.db.refresh(account)
        return account

    def update_account(self, account: Account, **fields) -> Account:
        for name, value in fields.items():
            setattr(account, name, value)
        account.updated_at = datetime.utcnow()
        return self._save(account, "update account")

    def delete_account(self, account: Account) -> None:
        """
        Hard delete. Remaining applications are purged with it; asset
        listings are detached and keep their owner wallet snapshot.
        """
        self.db.query(VerificationApplication).filter(
            VerificationApplication.account_id == account.id
        ).delete(synchronize_session=False)
        self.db.execute(
            update(AssetListing)
            .where(AssetListing.account_id == account.id)
            .values(account_id=None)
        )
        self.db.delete(account)
        self._commit("delete account")

    # ─────────────────────────────────────────────
    # VERIFICATION APPLICATIONS
    # ─────────────────────────────────────────────

    def get_application(self, application_id: str, kind: Optional[ApplicationKind] = None) -> VerificationApplication:
        query = self.db.query(VerificationApplication).filter(VerificationApplication.id == application_id)
        if kind is not None:
            query = query.filter(VerificationApplication.kind == kind)
        application = query.first()
        if not application:
            raise NotFound(f"{(kind.value.upper() + ' ') if kind else ''}Application not found")
        return application

    def find_application(self, account_id: str, kind: ApplicationKind) -> Optional[VerificationApplication]:
        return (
            self.db.query(VerificationApplication)
            .filter(VerificationApplication.account_id == account_id, VerificationApplication.kind == kind)
            .order_by(VerificationApplication.submitted_at.desc())
            .first()
        )

    def create_application(self, **fields) -> VerificationApplication:
        return self._save(VerificationApplication(**fields), "create application")

    def update_application(self, application: VerificationApplication, **fields) -> VerificationApplication:
        for name, value in fields.items():
            setattr(application, name, value)
        return self._save(application, "update application")

    def delete_application(self, application: VerificationApplication) -> None:
        self.db.delete(application)
        self._commit("purge application")

    # ─────────────────────────────────────────────
    # CREDENTIALS
    # ─────────────────────────────────────────────

    def get_credential(self, credential_id: str) -> CredentialRecord:
        credential = self.db.get(CredentialRecord, credential_id)
        if not credential:
            raise NotFound("Credential not found")
        return credential

    def list_credentials(self) -> List[CredentialRecord]:
        return self.db.query(CredentialRecord).order_by(CredentialRecord.issued_at.desc()).all()

    def create_credential(self, **fields) -> CredentialRecord:
        return self._save(CredentialRecord(**fields), "insert credential")

    def update_credential(self, credential: CredentialRecord, **fields) -> CredentialRecord:
        for name, value in fields.items():
            setattr(credential, name, value)
        return self._save(credential, "update credential")

    def delete_credential(self, credential: CredentialRecord) -> None:
        self.db.delete(credential)
        self._commit("delete credential")

    def unlink_credential(self, account: Optional[Account], credential: CredentialRecord) -> None:
        """Clear both sides of the account <-> credential link in one commit."""
        if account is not None:
            account.credential_id = None
            account.updated_at = datetime.utcnow()
        credential.account_id = None
        self._commit("unlink credential")

    # ─────────────────────────────────────────────
    # AUTH IDENTITIES
    # ─────────────────────────────────────────────

    def get_identity(self, identity_id: str) -> Optional[AuthIdentity]:
        return self.db.get(AuthIdentity, identity_id)

    def find_identity_by_wallet(self, wallet_address: str) -> Optional[AuthIdentity]:
        return self.db.query(AuthIdentity).filter(AuthIdentity.wallet_address == wallet_address).first()

    def save_identity(self, identity: AuthIdentity) -> AuthIdentity:
        return self._save(identity, "save auth identity")

    def sync_identity(self, account: Account) -> Optional[AuthIdentity]:
        """Mirror the account's status and credential link onto its identity."""
        identity = self.find_identity_by_wallet(account.wallet_address)
        if identity is None:
            return None
        identity.account_id = account.id
        identity.account_status = account.status
        identity.credential_id = account.credential_id
        return self._save(identity, "sync auth identity")

    def delete_identity_for_wallet(self, wallet_address: str) -> int:
        deleted = self.db.query(AuthIdentity).filter(
            AuthIdentity.wallet_address == wallet_address
        ).delete(synchronize_session=False)
        self._commit("delete auth identity")
        return deleted

    # ─────────────────────────────────────────────
    # ASSETS
    # ─────────────────────────────────────────────

    def get_asset(self, asset_id: str) -> AssetListing:
        asset = self.db.get(AssetListing, asset_id)
        if not asset:
            raise NotFound("Asset not found")
        return asset

    def create_asset(self, **fields) -> AssetListing:
        return self._save(AssetListing(**fields), "save asset draft")

    def claim_asset(self, asset: AssetListing, expected_status: AssetStatus, claim: str) -> None:
        """
        Reserve the asset for a single mint attempt.

        Conditional update: only succeeds if nobody else changed the status or
        holds a claim since we read the row.
        """
        result = self.db.execute(
            update(AssetListing)
            .where(
                AssetListing.id == asset.id,
                AssetListing.status == expected_status,
                AssetListing.mint_claim.is_(None),
            )
            .values(mint_claim=claim)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise InvalidTransition(
                "Asset is already being authorized or is no longer "
                f"'{expected_status.value}'; reload it before retrying"
            )
        self._commit("claim asset for minting")
        self.db.refresh(asset)

    def release_claim(self, asset: AssetListing, claim: str) -> None:
        self.db.execute(
            update(AssetListing)
            .where(AssetListing.id == asset.id, AssetListing.mint_claim == claim)
            .values(mint_claim=None)
        )
        self._commit("release mint claim")
        self.db.refresh(asset)

    def transition_asset(
        self,
        asset: AssetListing,
        expected_status: AssetStatus,
        new_status: AssetStatus,
        changed_by: Optional[str],
        change_reason: Optional[str],
        claim: Optional[str] = None,
        **fields
    ) -> AssetListing:
        """
        Conditionally move the asset to new_status and append its AuditEntry.

        Both land in one commit. Zero matched rows means another request got
        there first. Without a claim the write also refuses an asset that is
        reserved for minting.
        """
        snapshot = asset.asset_metadata
        conditions = [AssetListing.id == asset.id, AssetListing.status == expected_status]
        if claim is not None:
            conditions.append(AssetListing.mint_claim == claim)
        else:
            conditions.append(AssetListing.mint_claim.is_(None))

        values = dict(fields, status=new_status, updated_at=datetime.utcnow())
        try:
            result = self.db.execute(update(AssetListing).where(*conditions).values(**values))
            if result.rowcount != 1:
                self.db.rollback()
                raise InvalidTransition(
                    f"Asset changed concurrently or is being authorized; "
                    f"expected status '{expected_status.value}'"
                )
            self.db.add(AuditEntry(
                asset_id=asset.id,
                previous_status=expected_status,
                new_status=new_status,
                changed_by=changed_by,
                change_reason=change_reason,
                metadata_snapshot=snapshot,
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailed(f"Failed to update asset: {e}")
        self.db.refresh(asset)
        return asset

    def asset_history(self, asset_id: str) -> List[AuditEntry]:
        return (
            self.db.query(AuditEntry)
            .filter(AuditEntry.asset_id == asset_id)
            .order_by(AuditEntry.id.asc())
            .all()
        )
