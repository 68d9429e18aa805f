"""
Transition executor for accounts, compliance applications, credentials and assets.

This is the core enforcement mechanism - every status change MUST go through
here. A transition checks the StatusRegistry, performs any ledger side effect,
persists the new state, and purges what the transition makes superfluous, in
that order. Steps commit one by one; nothing is rolled back automatically, so
a failure reports which steps are already durable.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from zerogate.models.domain import Account, VerificationApplication
from zerogate.models.enums import (
    AccountStatus,
    AccountType,
    ApplicationKind,
    ApplicationStatus,
    AssetStatus,
    CredentialStatus,
    CredentialType,
    KycStatus
)
from zerogate.services.asset_schemas import build_token_metadata, validate_asset_metadata
from zerogate.services.errors import (
    CredentialIssuanceFailed,
    Forbidden,
    InvalidTransition,
    LedgerOperationFailed,
    LedgerUnavailable,
    PersistenceFailed,
    ValidationFailed,
    WorkflowError
)
from zerogate.services.identity import ActorContext
from zerogate.services.ledger import CredentialIssuance, ExternalLedgerGateway
from zerogate.services.persistence import PersistenceGateway
from zerogate.services.status_registry import EntityKind, StatusRegistry

logger = logging.getLogger(__name__)

REVOCATION_PURGE = "purge"
REVOCATION_SOFT = "soft"


@dataclass
class TransitionResult:
    entity_kind: EntityKind
    entity_id: str
    action: str
    from_status: Optional[str]
    to_status: str
    steps: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)


class StepLog:
    """
    Ordered record of the steps a transition has durably completed.

    Used as a context manager: a WorkflowError escaping the block is stamped
    with the completed steps so the caller can inspect state before retrying.
    """

    def __init__(self, entity_kind: EntityKind, entity_id: str, action: str):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.action = action
        self.done: List[str] = []

    def mark(self, step: str) -> None:
        self.done.append(step)
        logger.info("transition step", extra={
            "entity_kind": self.entity_kind.value,
            "entity_id": self.entity_id,
            "action": self.action,
            "step": step,
        })

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if isinstance(exc, WorkflowError):
            exc.completed_steps = list(self.done)
            logger.warning("transition aborted", extra={
                "entity_kind": self.entity_kind.value,
                "entity_id": self.entity_id,
                "action": self.action,
                "error_kind": exc.kind,
                "completed_steps": self.done,
            })
        return False


def _require_text(value: Optional[str], message: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationFailed(message)
    return str(value).strip()


class TransitionExecutor:
    """Applies one transition end to end."""

    def __init__(
        self,
        db: Session,
        ledger: ExternalLedgerGateway,
        registry: Optional[StatusRegistry] = None,
        revocation_mode: str = REVOCATION_PURGE
    ):
        if revocation_mode not in (REVOCATION_PURGE, REVOCATION_SOFT):
            raise ValueError(f"Unknown revocation mode: {revocation_mode}")
        self.db = db
        self.store = PersistenceGateway(db)
        self.ledger = ledger
        self.registry = registry or StatusRegistry()
        self.revocation_mode = revocation_mode

    def execute(self, entity_kind, entity_id: str, action: str, actor: ActorContext, **params) -> TransitionResult:
        """Dispatch `action` on the entity to its handler."""
        handlers: Dict[Tuple[EntityKind, str], Callable[..., TransitionResult]] = {
            (EntityKind.BUSINESS_ACCOUNT, "onboard"): self.onboard_business,
            (EntityKind.BUSINESS_ACCOUNT, "approve"): self.approve_kyb,
            (EntityKind.CONSUMER_ACCOUNT, "submit"): self.submit_kyc,
            (EntityKind.CONSUMER_ACCOUNT, "resubmit"): self.submit_kyc,
            (EntityKind.CONSUMER_ACCOUNT, "approve"): self.approve_kyc,
            (EntityKind.CONSUMER_ACCOUNT, "reject"): self.reject_kyc,
            (EntityKind.ASSET, "submit_for_review"): self.submit_for_review,
            (EntityKind.ASSET, "authorize"): self.authorize_asset,
            (EntityKind.ASSET, "authorize_draft"): self.authorize_draft,
            (EntityKind.ASSET, "reject"): self.reject_asset,
            (EntityKind.ASSET, "reject_draft"): self.reject_draft,
            (EntityKind.CREDENTIAL, "revoke"): self.revoke_credential,
        }
        handler = handlers.get((EntityKind(entity_kind), action))
        if handler is None:
            raise InvalidTransition(f"Unknown action '{action}' for {EntityKind(entity_kind).value}")
        return handler(entity_id, actor, **params)

    # ─────────────────────────────────────────────
    # ONBOARDING / SUBMISSION
    # ─────────────────────────────────────────────

    def _owned_account(self, account_id: str, actor: ActorContext, account_type: AccountType) -> Account:
        account = self.store.get_account(account_id)
        if actor.account_id != account.id and not actor.is_admin:
            raise Forbidden("You can only submit applications for your own account")
        if account.account_type != account_type:
            raise InvalidTransition(
                f"Account is a {account.account_type.value} account, not {account_type.value}"
            )
        return account

    def onboard_business(
        self,
        account_id: str,
        actor: ActorContext,
        legal_name: Optional[str] = None,
        registration_number: Optional[str] = None,
        jurisdiction: Optional[str] = None,
        company_name: Optional[str] = None,
        corporate_email: Optional[str] = None,
        documents: Optional[list] = None
    ) -> TransitionResult:
        """pending_onboarding -> pending_kyb, creating the KYB application."""
        with StepLog(EntityKind.BUSINESS_ACCOUNT, account_id, "onboard") as steps:
            account = self._owned_account(account_id, actor, AccountType.BUSINESS)
            from_status = account.status
            to_status = self.registry.allowed_transition(EntityKind.BUSINESS_ACCOUNT, from_status, "onboard")
            legal_name = _require_text(legal_name, "legal_name is required")
            registration_number = _require_text(registration_number, "registration_number is required")

            application = self.store.create_application(
                account_id=account.id,
                kind=ApplicationKind.KYB,
                wallet_address=account.wallet_address,
                status=ApplicationStatus.PENDING,
                legal_name=legal_name,
                registration_number=registration_number,
                jurisdiction=jurisdiction,
                documents=documents or [],
                submitted_at=datetime.utcnow(),
            )
            steps.mark("create_application")

            self.store.update_account(
                account,
                status=AccountStatus(to_status),
                company_name=company_name or legal_name,
                corporate_email=corporate_email,
            )
            steps.mark("update_account")
            self.store.sync_identity(account)
            steps.mark("sync_identity")

        return TransitionResult(
            EntityKind.BUSINESS_ACCOUNT, account.id, "onboard", from_status.value, to_status,
            steps.done, {"application_id": application.id},
        )

    def submit_kyc(
        self,
        account_id: str,
        actor: ActorContext,
        full_name: Optional[str] = None,
        date_of_birth: Optional[str] = None,
        nationality: Optional[str] = None,
        id_document_number: Optional[str] = None,
        documents: Optional[list] = None
    ) -> TransitionResult:
        """
        not_started -> pending (new application) or rejected -> pending
        (resubmission reusing the retained application).
        """
        with StepLog(EntityKind.CONSUMER_ACCOUNT, account_id, "submit") as steps:
            account = self._owned_account(account_id, actor, AccountType.CONSUMER)
            from_status = account.kyc_status or KycStatus.NOT_STARTED
            action = "resubmit" if from_status == KycStatus.REJECTED else "submit"
            steps.action = action
            to_status = self.registry.allowed_transition(EntityKind.CONSUMER_ACCOUNT, from_status, action)

            fields = dict(
                full_name=_require_text(full_name, "full_name is required"),
                date_of_birth=_require_text(date_of_birth, "date_of_birth is required"),
                nationality=_require_text(nationality, "nationality is required"),
                id_document_number=id_document_number,
                documents=documents or [],
                status=ApplicationStatus.PENDING,
                submitted_at=datetime.utcnow(),
            )
            previous = self.store.find_application(account.id, ApplicationKind.KYC) if action == "resubmit" else None
            if previous is not None:
                application = self.store.update_application(
                    previous, rejection_reason=None, reviewed_at=None, reviewed_by=None, **fields
                )
            else:
                application = self.store.create_application(
                    account_id=account.id,
                    kind=ApplicationKind.KYC,
                    wallet_address=account.wallet_address,
                    **fields
                )
            steps.mark("save_application")

            self.store.update_account(
                account, kyc_status=KycStatus(to_status), kyc_submitted_at=datetime.utcnow()
            )
            steps.mark("update_account")

        return TransitionResult(
            EntityKind.CONSUMER_ACCOUNT, account.id, action, from_status.value, to_status,
            steps.done, {"application_id": application.id},
        )

    # ─────────────────────────────────────────────
    # APPROVAL (credential issuance + purge)
    # ─────────────────────────────────────────────

    def approve_kyb(self, application_id: str, actor: ActorContext,
                    issuer_address: Optional[str] = None, entity_id: Optional[str] = None) -> TransitionResult:
        return self._approve(ApplicationKind.KYB, application_id, actor, issuer_address, entity_id)

    def approve_kyc(self, application_id: str, actor: ActorContext,
                    issuer_address: Optional[str] = None, entity_id: Optional[str] = None) -> TransitionResult:
        return self._approve(ApplicationKind.KYC, application_id, actor, issuer_address, entity_id)

    def _approve(
        self,
        kind: ApplicationKind,
        application_id: str,
        actor: ActorContext,
        issuer_address: Optional[str],
        entity_id: Optional[str]
    ) -> TransitionResult:
        """
        Approve an application and issue its credential.

        Ordering invariants:
        - The credential is persisted before the account is activated
        - The application is purged LAST, only after the credential and the
          active status are durable, so a crash never loses the application
          without a compensating credential
        """
        actor.require_admin(f"approve {kind.value.upper()} applications")
        entity_kind = EntityKind.BUSINESS_ACCOUNT if kind == ApplicationKind.KYB else EntityKind.CONSUMER_ACCOUNT

        with StepLog(entity_kind, application_id, "approve") as steps:
            # 1. Load
            application = self.store.get_application(application_id, kind)
            if entity_id and entity_id != application.account_id:
                raise ValidationFailed("entityId does not match the application's account")
            if application.status != ApplicationStatus.PENDING:
                raise InvalidTransition(
                    f"Only pending applications can be approved (status: {application.status.value})"
                )
            account = self.store.get_account(application.account_id)
            from_status = account.status if kind == ApplicationKind.KYB else (account.kyc_status or KycStatus.NOT_STARTED)
            to_status = self.registry.allowed_transition(entity_kind, from_status, "approve")
            steps.mark("load_application")

            # 2. Credential payload
            issuer = issuer_address or actor.wallet_address
            credential_type, claims = self._claims_for(application)
            steps.mark("build_payload")

            # 3. Issue
            issuance = self._issue_credential(issuer, account.wallet_address, credential_type, claims)
            steps.mark("issue_credential")

            # 4. Persist credential
            credential = self.store.create_credential(
                account_id=account.id,
                wallet_address=account.wallet_address,
                credential_type=credential_type,
                status=CredentialStatus.ACTIVE,
                issuer_did=issuer,
                credential_metadata=issuance.payload,
                ledger_tx_hash=issuance.tx_hash,
                issued_at=datetime.utcnow(),
            )
            steps.mark("persist_credential")

            # 5. Activate account
            if kind == ApplicationKind.KYB:
                self.store.update_account(account, status=AccountStatus(to_status), credential_id=credential.id)
            else:
                self.store.update_account(
                    account,
                    kyc_status=KycStatus(to_status),
                    status=AccountStatus.ACTIVE,
                    credential_id=credential.id,
                )
            steps.mark("activate_account")

            # 6. Session projection
            self.store.sync_identity(account)
            steps.mark("sync_identity")

            # 7. Purge
            self.store.delete_application(application)
            steps.mark("purge_application")

        return TransitionResult(
            entity_kind, account.id, "approve", from_status.value, to_status, steps.done,
            {"credential_id": credential.id, "entity_id": account.id, "application_id": application_id},
        )

    @staticmethod
    def _claims_for(application: VerificationApplication) -> Tuple[CredentialType, Dict[str, Any]]:
        if application.kind == ApplicationKind.KYB:
            return CredentialType.BUSINESS_IDENTITY, {
                "legalName": application.legal_name,
                "registrationNumber": application.registration_number,
                "jurisdiction": application.jurisdiction,
            }
        return CredentialType.CONSUMER_IDENTITY, {
            "fullName": application.full_name,
            "nationality": application.nationality,
        }

    def _issue_credential(self, issuer: str, subject: str, credential_type: CredentialType,
                          claims: Dict[str, Any]) -> CredentialIssuance:
        try:
            return self.ledger.issue_credential_record(issuer, subject, credential_type.value, claims)
        except LedgerOperationFailed as e:
            raise CredentialIssuanceFailed(
                f"Failed to issue credential: {e.message}",
                result_code=e.result_code,
                ledger_kind=e.ledger_kind,
                tx_hash=e.tx_hash,
            ) from e
        except LedgerUnavailable as e:
            raise CredentialIssuanceFailed(f"Failed to issue credential: {e.message}") from e

    # ─────────────────────────────────────────────
    # REJECTION (consumer KYC)
    # ─────────────────────────────────────────────

    def reject_kyc(self, application_id: str, actor: ActorContext, reason: Optional[str] = None) -> TransitionResult:
        """pending -> rejected. The application is kept for resubmission."""
        actor.require_admin("reject KYC applications")
        reason = _require_text(reason, "A rejection reason is required")

        with StepLog(EntityKind.CONSUMER_ACCOUNT, application_id, "reject") as steps:
            application = self.store.get_application(application_id, ApplicationKind.KYC)
            if application.status != ApplicationStatus.PENDING:
                raise InvalidTransition(
                    f"Only pending applications can be rejected (status: {application.status.value})"
                )
            account = self.store.get_account(application.account_id)
            from_status = account.kyc_status or KycStatus.NOT_STARTED
            to_status = self.registry.allowed_transition(EntityKind.CONSUMER_ACCOUNT, from_status, "reject")

            self.store.update_application(
                application,
                status=ApplicationStatus.REJECTED,
                rejection_reason=reason,
                reviewed_at=datetime.utcnow(),
                reviewed_by=actor.wallet_address,
            )
            steps.mark("reject_application")
            self.store.update_account(account, kyc_status=KycStatus(to_status))
            steps.mark("update_account")

        return TransitionResult(
            EntityKind.CONSUMER_ACCOUNT, account.id, "reject", from_status.value, to_status,
            steps.done, {"application_id": application.id},
        )

    # ─────────────────────────────────────────────
    # ASSET REVIEW PIPELINE
    # ─────────────────────────────────────────────

    def submit_for_review(self, asset_id: str, actor: ActorContext) -> TransitionResult:
        """
        draft -> pending_review.

        The category metadata must validate first; an incomplete listing is
        refused with every missing field and document listed.
        """
        with StepLog(EntityKind.ASSET, asset_id, "submit_for_review") as steps:
            asset = self.store.get_asset(asset_id)
            if actor.account_id != asset.account_id and not actor.is_admin:
                raise Forbidden("Only the asset owner can submit it for review")
            from_status = asset.status
            to_status = self.registry.allowed_transition(EntityKind.ASSET, from_status, "submit_for_review")

            errors = validate_asset_metadata(asset.category, asset.asset_metadata, asset.legal_documents)
            if errors:
                raise ValidationFailed("Asset metadata is incomplete: " + "; ".join(errors), errors=errors)

            self.store.transition_asset(
                asset, from_status, AssetStatus(to_status),
                changed_by=actor.identity_id,
                change_reason="Action: submit_for_review",
                submitted_at=datetime.utcnow(),
            )
            steps.mark("update_status")

        return TransitionResult(EntityKind.ASSET, asset.id, "submit_for_review",
                                from_status.value, to_status, steps.done)

    def authorize_asset(self, asset_id: str, actor: ActorContext, notes: Optional[str] = None,
                        action: str = "authorize") -> TransitionResult:
        """
        Mint the asset's token and mark it authorized.

        A conditional claim reserves the asset before the mint, so concurrent
        authorize calls cannot both reach the ledger. The claim is released
        only when the mint certainly did not happen.
        """
        actor.require_admin("authorize assets")

        with StepLog(EntityKind.ASSET, asset_id, action) as steps:
            asset = self.store.get_asset(asset_id)
            from_status = asset.status
            to_status = self.registry.allowed_transition(EntityKind.ASSET, from_status, action)

            claim = str(uuid.uuid4())
            self.store.claim_asset(asset, from_status, claim)
            steps.mark("claim_asset")

            metadata = build_token_metadata(asset)
            try:
                minted = self.ledger.mint_asset_token(metadata, destination=asset.owner_wallet_address)
            except LedgerOperationFailed as e:
                if e.tx_hash:
                    # The mint may exist on-ledger; keep the claim so a blind retry cannot mint again
                    logger.error("mint outcome uncertain, claim kept for reconciliation", extra={
                        "asset_id": asset.id, "tx_hash": e.tx_hash, "result_code": e.result_code,
                    })
                else:
                    self.store.release_claim(asset, claim)
                raise
            except LedgerUnavailable:
                self.store.release_claim(asset, claim)
                raise
            steps.mark("mint_token")

            try:
                self.store.transition_asset(
                    asset, from_status, AssetStatus(to_status),
                    changed_by=actor.identity_id,
                    change_reason=notes or f"Action: {action}",
                    claim=claim,
                    mint_claim=None,
                    token_id=minted.token_id,
                    mint_tx_hash=minted.tx_hash,
                    reviewed_by=actor.identity_id,
                    authorized_at=datetime.utcnow(),
                    authorization_notes=notes or "",
                )
            except (PersistenceFailed, InvalidTransition) as e:
                # The claim stays held so nothing else moves the asset until reconciled
                logger.error("token minted but asset not updated, reconcile manually", extra={
                    "asset_id": asset.id, "token_id": minted.token_id, "tx_hash": minted.tx_hash,
                })
                raise PersistenceFailed(
                    f"{e.message} (minted token {minted.token_id}, tx {minted.tx_hash})"
                ) from e
            steps.mark("update_status")

        return TransitionResult(
            EntityKind.ASSET, asset.id, action, from_status.value, to_status, steps.done,
            {"token_id": minted.token_id, "tx_hash": minted.tx_hash, "offer_tx_hash": minted.offer_tx_hash},
        )

    def authorize_draft(self, asset_id: str, actor: ActorContext, notes: Optional[str] = None) -> TransitionResult:
        """Admin desk approval: mints straight from draft."""
        return self.authorize_asset(asset_id, actor, notes=notes, action="authorize_draft")

    def reject_asset(self, asset_id: str, actor: ActorContext, reason: Optional[str] = None,
                     action: str = "reject") -> TransitionResult:
        """Reject with a mandatory reason. No reason, no status change."""
        actor.require_admin("reject assets")
        reason = _require_text(reason, "A rejection reason is required")

        with StepLog(EntityKind.ASSET, asset_id, action) as steps:
            asset = self.store.get_asset(asset_id)
            from_status = asset.status
            to_status = self.registry.allowed_transition(EntityKind.ASSET, from_status, action)

            self.store.transition_asset(
                asset, from_status, AssetStatus(to_status),
                changed_by=actor.identity_id,
                change_reason=reason,
                reviewed_by=actor.identity_id,
                rejection_reason=reason,
                rejected_at=datetime.utcnow(),
            )
            steps.mark("update_status")

        return TransitionResult(EntityKind.ASSET, asset.id, action, from_status.value, to_status, steps.done)

    def reject_draft(self, asset_id: str, actor: ActorContext, reason: Optional[str] = None) -> TransitionResult:
        return self.reject_asset(asset_id, actor, reason=reason, action="reject_draft")

    # ─────────────────────────────────────────────
    # REVOCATION
    # ─────────────────────────────────────────────

    def revoke_credential(
        self,
        credential_id: str,
        actor: ActorContext,
        account_id: Optional[str] = None,
        target_wallet_address: Optional[str] = None,
        reason: Optional[str] = None
    ) -> TransitionResult:
        """
        Revoke a credential.

        In purge mode (default) this is DESTRUCTIVE and irreversible: the
        credential and the owning account are deleted. Order:
        1. Delete the wallet's auth identity (sessions die immediately)
        2. Null both cross-links
        3. Delete credential, then account

        Soft mode keeps both rows: the credential is marked revoked and the
        account drops back to the start of verification so it can reapply.
        """
        actor.require_admin("revoke credentials")
        action = "revoke" if self.revocation_mode == REVOCATION_PURGE else "soft_revoke"

        with StepLog(EntityKind.CREDENTIAL, credential_id, action) as steps:
            credential = self.store.get_credential(credential_id)
            from_status = credential.status
            to_status = self.registry.allowed_transition(EntityKind.CREDENTIAL, from_status, action)

            account_id = account_id or credential.account_id
            if account_id:
                account = self.store.get_account(account_id)
            else:
                # Links already cleared by an interrupted revoke
                account = self.store.find_account_by_wallet(credential.wallet_address)
            if account is not None and credential.account_id and credential.account_id != account.id:
                raise ValidationFailed("entityId does not own this credential")

            owner_id = account.id if account is not None else None
            wallet = account.wallet_address if account is not None else credential.wallet_address
            if target_wallet_address and target_wallet_address != wallet:
                raise ValidationFailed("targetWalletAddress does not match the credential holder")

            # 1. Cut sessions
            self.store.delete_identity_for_wallet(wallet)
            steps.mark("delete_auth_identity")

            # 2. Unlink both sides
            self.store.unlink_credential(account, credential)
            steps.mark("unlink")

            # 3. Delete or flip
            if self.revocation_mode == REVOCATION_PURGE:
                self.store.delete_credential(credential)
                steps.mark("delete_credential")
                if account is not None:
                    self.store.delete_account(account)
                    steps.mark("delete_account")
            else:
                self.store.update_credential(
                    credential,
                    status=CredentialStatus.REVOKED,
                    revoked_at=datetime.utcnow(),
                    revocation_reason=reason,
                )
                steps.mark("mark_revoked")
                if account is not None:
                    if account.account_type == AccountType.BUSINESS:
                        # KYB application was purged at approval; onboarding starts over
                        self.store.update_account(account, status=AccountStatus.PENDING_ONBOARDING)
                    else:
                        self.store.update_account(
                            account,
                            status=AccountStatus.PENDING_ONBOARDING,
                            kyc_status=KycStatus.NOT_STARTED,
                        )
                    steps.mark("reset_account")

        logger.warning("credential revoked", extra={
            "credential_id": credential_id,
            "account_id": owner_id,
            "mode": self.revocation_mode,
            "revoked_by": actor.wallet_address,
        })
        return TransitionResult(
            EntityKind.CREDENTIAL, credential_id, action, from_status.value, to_status, steps.done,
            {"credential_id": credential_id, "entity_id": owner_id,
             "mode": self.revocation_mode},
        )
