"""
Tests for the transition executor.

These tests prove the ordering and data-minimization guarantees:
- A credential exists before its account is active, and the application is
  purged only after both are durable
- Rejected KYC applications are retained and reused on resubmission
- Revocation leaves no dangling links and ends the wallet's sessions
- An asset is minted at most once, and a failed mint leaves no trace
"""
from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.orm import sessionmaker

from zerogate.database import Base, build_engine
from zerogate.models.audit import AuditEntry
from zerogate.models.domain import (
    Account,
    AssetListing,
    AuthIdentity,
    CredentialRecord,
    VerificationApplication
)
from zerogate.models.enums import (
    AccountStatus,
    ApplicationStatus,
    AssetStatus,
    CredentialStatus,
    CredentialType,
    IdentityRole,
    KycStatus
)
from zerogate.services.errors import (
    CredentialIssuanceFailed,
    Forbidden,
    InvalidTransition,
    LedgerErrorKind,
    LedgerOperationFailed,
    LedgerUnavailable,
    NotFound,
    PersistenceFailed,
    ValidationFailed
)
from zerogate.services.status_registry import EntityKind
from zerogate.services.state_machine import TransitionExecutor


def _approve(executor, application, actor):
    return executor.approve_kyb(application.id, actor, issuer_address=actor.wallet_address)


class TestBusinessOnboarding:

    def test_onboard_creates_application(self, db_session, executor, business_account, business_actor):
        result = executor.onboard_business(
            business_account.id, business_actor,
            legal_name="Acme Holdings Pte Ltd", registration_number="201912345K",
        )

        db_session.refresh(business_account)
        assert business_account.status == AccountStatus.PENDING_KYB
        assert business_account.company_name == "Acme Holdings Pte Ltd"
        application = db_session.get(VerificationApplication, result.data["application_id"])
        assert application.status == ApplicationStatus.PENDING
        assert application.wallet_address == business_account.wallet_address

    def test_onboard_twice_refused(self, executor, kyb_application, business_account, business_actor):
        with pytest.raises(InvalidTransition):
            executor.onboard_business(
                business_account.id, business_actor,
                legal_name="Acme", registration_number="1",
            )

    def test_onboard_requires_legal_name(self, executor, business_account, business_actor):
        with pytest.raises(ValidationFailed):
            executor.onboard_business(business_account.id, business_actor, registration_number="1")

    def test_cannot_onboard_someone_else(self, executor, business_account, consumer_actor):
        with pytest.raises(Forbidden):
            executor.onboard_business(
                business_account.id, consumer_actor,
                legal_name="Acme", registration_number="1",
            )


class TestKybApproval:

    def test_approve_issues_credential_then_purges(self, db_session, executor, ledger, kyb_application,
                                                   business_account, admin_actor):
        """Credential persisted, account active, application gone."""
        application_id = kyb_application.id
        result = _approve(executor, kyb_application, admin_actor)

        db_session.refresh(business_account)
        assert business_account.status == AccountStatus.ACTIVE

        credential = db_session.get(CredentialRecord, result.data["credential_id"])
        assert credential.status == CredentialStatus.ACTIVE
        assert credential.credential_type == CredentialType.BUSINESS_IDENTITY
        assert credential.account_id == business_account.id
        assert business_account.credential_id == credential.id

        subject = credential.credential_metadata["credentialSubject"]
        assert subject["id"] == f"did:xrpl:{business_account.wallet_address}"
        assert subject["legalName"] == "Acme Holdings Pte Ltd"
        assert credential.issuer_did == admin_actor.wallet_address

        assert db_session.get(VerificationApplication, application_id) is None
        assert result.steps[-1] == "purge_application"
        assert result.from_status == "pending_kyb"
        assert result.to_status == "active"

    def test_approve_syncs_identity(self, db_session, executor, kyb_application, business_account, admin_actor):
        identity = AuthIdentity(wallet_address=business_account.wallet_address, email="acme@test.local")
        db_session.add(identity)
        db_session.commit()

        result = _approve(executor, kyb_application, admin_actor)

        db_session.refresh(identity)
        assert identity.account_status == AccountStatus.ACTIVE
        assert identity.credential_id == result.data["credential_id"]

    def test_purge_failure_keeps_credential(self, db_session, executor, kyb_application, business_account,
                                            admin_actor, monkeypatch):
        """
        A failed purge never leaves an application without a credential.

        Everything before the purge is durable and reported.
        """
        application_id = kyb_application.id

        def fail_purge(application):
            raise PersistenceFailed("Failed to purge application: disk I/O error")

        monkeypatch.setattr(executor.store, "delete_application", fail_purge)

        with pytest.raises(PersistenceFailed) as exc_info:
            _approve(executor, kyb_application, admin_actor)

        assert exc_info.value.completed_steps[-1] == "sync_identity"
        assert "persist_credential" in exc_info.value.completed_steps

        db_session.refresh(business_account)
        assert business_account.status == AccountStatus.ACTIVE
        assert db_session.get(CredentialRecord, business_account.credential_id) is not None
        assert db_session.get(VerificationApplication, application_id) is not None

    def test_issuance_failure_changes_nothing(self, db_session, executor, ledger, kyb_application,
                                              business_account, admin_actor):
        ledger.issue_error = LedgerOperationFailed("CredentialPayment failed: tecNO_DST", result_code="tecNO_DST")

        with pytest.raises(CredentialIssuanceFailed) as exc_info:
            _approve(executor, kyb_application, admin_actor)

        assert exc_info.value.result_code == "tecNO_DST"
        assert exc_info.value.completed_steps == ["load_application", "build_payload"]
        db_session.refresh(business_account)
        assert business_account.status == AccountStatus.PENDING_KYB
        assert business_account.credential_id is None
        assert db_session.query(CredentialRecord).count() == 0
        assert db_session.get(VerificationApplication, kyb_application.id) is not None

    def test_approve_twice_not_found(self, executor, kyb_application, admin_actor):
        _approve(executor, kyb_application, admin_actor)

        with pytest.raises(NotFound):
            _approve(executor, kyb_application, admin_actor)

    def test_non_admin_refused(self, executor, kyb_application, business_actor):
        with pytest.raises(Forbidden):
            _approve(executor, kyb_application, business_actor)

    def test_entity_mismatch_refused(self, executor, kyb_application, consumer_account, admin_actor):
        with pytest.raises(ValidationFailed):
            executor.approve_kyb(kyb_application.id, admin_actor, entity_id=consumer_account.id)

    def test_execute_dispatches(self, db_session, executor, kyb_application, business_account, admin_actor):
        result = executor.execute(EntityKind.BUSINESS_ACCOUNT, kyb_application.id, "approve", admin_actor)

        assert result.entity_id == business_account.id
        assert result.data["credential_id"]

    def test_execute_unknown_action(self, executor, kyb_application, admin_actor):
        with pytest.raises(InvalidTransition):
            executor.execute("account.business", kyb_application.id, "teleport", admin_actor)


class TestConsumerKyc:

    def _submit(self, executor, account, actor, **overrides):
        fields = dict(full_name="Jane Tan", date_of_birth="1990-04-01", nationality="SG")
        fields.update(overrides)
        return executor.submit_kyc(account.id, actor, **fields)

    def test_submit(self, db_session, executor, consumer_account, consumer_actor):
        result = self._submit(executor, consumer_account, consumer_actor)

        db_session.refresh(consumer_account)
        assert consumer_account.kyc_status == KycStatus.PENDING
        assert consumer_account.kyc_submitted_at is not None
        assert result.action == "submit"

    def test_reject_then_resubmit_reuses_application(self, db_session, executor, consumer_account,
                                                     consumer_actor, admin_actor):
        """Rejected data is retained, then overwritten in place on resubmission."""
        application_id = self._submit(executor, consumer_account, consumer_actor).data["application_id"]
        executor.reject_kyc(application_id, admin_actor, reason="Document unreadable")

        application = db_session.get(VerificationApplication, application_id)
        assert application.status == ApplicationStatus.REJECTED
        assert application.rejection_reason == "Document unreadable"
        db_session.refresh(consumer_account)
        assert consumer_account.kyc_status == KycStatus.REJECTED

        result = self._submit(executor, consumer_account, consumer_actor, full_name="Jane Tan Mei Ling")

        assert result.action == "resubmit"
        assert result.data["application_id"] == application_id
        db_session.refresh(application)
        assert application.status == ApplicationStatus.PENDING
        assert application.full_name == "Jane Tan Mei Ling"
        assert application.rejection_reason is None
        assert application.reviewed_by is None
        assert db_session.query(VerificationApplication).count() == 1

    def test_reject_requires_reason(self, db_session, executor, consumer_account, consumer_actor, admin_actor):
        application_id = self._submit(executor, consumer_account, consumer_actor).data["application_id"]

        with pytest.raises(ValidationFailed):
            executor.reject_kyc(application_id, admin_actor, reason="")

        db_session.refresh(consumer_account)
        assert consumer_account.kyc_status == KycStatus.PENDING

    def test_approve_kyc(self, db_session, executor, consumer_account, consumer_actor, admin_actor):
        application_id = self._submit(executor, consumer_account, consumer_actor).data["application_id"]

        result = executor.approve_kyc(application_id, admin_actor, issuer_address=admin_actor.wallet_address)

        db_session.refresh(consumer_account)
        assert consumer_account.kyc_status == KycStatus.APPROVED
        assert consumer_account.status == AccountStatus.ACTIVE
        credential = db_session.get(CredentialRecord, result.data["credential_id"])
        assert credential.credential_type == CredentialType.CONSUMER_IDENTITY
        assert credential.credential_metadata["credentialSubject"]["fullName"] == "Jane Tan"
        assert db_session.get(VerificationApplication, application_id) is None

    def test_kyb_application_id_not_accepted_for_kyc(self, executor, kyb_application, admin_actor):
        with pytest.raises(NotFound):
            executor.approve_kyc(kyb_application.id, admin_actor)

    def test_business_account_cannot_submit_kyc(self, executor, business_account, business_actor):
        with pytest.raises(InvalidTransition):
            self._submit(executor, business_account, business_actor)

    def test_submit_while_pending_refused(self, executor, consumer_account, consumer_actor):
        self._submit(executor, consumer_account, consumer_actor)

        with pytest.raises(InvalidTransition):
            self._submit(executor, consumer_account, consumer_actor)


class TestRevocation:

    @pytest.fixture
    def approved(self, db_session, executor, kyb_application, business_account, admin_actor):
        """Active business with a credential and a live auth identity."""
        identity = AuthIdentity(wallet_address=business_account.wallet_address, email="acme@test.local")
        db_session.add(identity)
        db_session.commit()
        result = _approve(executor, kyb_application, admin_actor)
        return business_account.id, result.data["credential_id"]

    def test_revoke_purges_without_dangling_links(self, db_session, executor, approved, draft_asset, admin_actor):
        account_id, credential_id = approved
        wallet = draft_asset.owner_wallet_address

        result = executor.revoke_credential(credential_id, admin_actor, account_id=account_id)

        db_session.expire_all()
        assert db_session.get(CredentialRecord, credential_id) is None
        assert db_session.get(Account, account_id) is None
        assert db_session.query(Account).filter(Account.credential_id == credential_id).count() == 0
        assert db_session.query(AuthIdentity).filter(AuthIdentity.wallet_address == wallet).count() == 0

        # Listings survive, detached, with the owner wallet snapshot
        asset = db_session.get(AssetListing, draft_asset.id)
        assert asset.account_id is None
        assert asset.owner_wallet_address == wallet

        assert result.steps == ["delete_auth_identity", "unlink", "delete_credential", "delete_account"]
        assert result.to_status == "deleted"

    def test_revoke_takes_account_from_credential(self, db_session, executor, approved, admin_actor):
        account_id, credential_id = approved

        executor.revoke_credential(credential_id, admin_actor)

        db_session.expire_all()
        assert db_session.get(Account, account_id) is None

    def test_revoke_twice_not_found(self, executor, approved, admin_actor):
        account_id, credential_id = approved
        executor.revoke_credential(credential_id, admin_actor)

        with pytest.raises(NotFound):
            executor.revoke_credential(credential_id, admin_actor)

    def test_soft_revoke_keeps_rows(self, db_session, ledger, approved, admin_actor, business_actor):
        account_id, credential_id = approved
        soft = TransitionExecutor(db_session, ledger, revocation_mode="soft")

        result = soft.revoke_credential(credential_id, admin_actor, reason="Sanctions hit")

        db_session.expire_all()
        credential = db_session.get(CredentialRecord, credential_id)
        account = db_session.get(Account, account_id)
        assert credential.status == CredentialStatus.REVOKED
        assert credential.revocation_reason == "Sanctions hit"
        assert credential.account_id is None
        assert account.credential_id is None
        assert account.status == AccountStatus.PENDING_ONBOARDING
        assert db_session.query(AuthIdentity).count() == 0
        assert result.to_status == "revoked"

        with pytest.raises(InvalidTransition):
            soft.revoke_credential(credential_id, admin_actor)

        # The business can start verification again
        reapplied = soft.onboard_business(
            account_id, business_actor,
            legal_name="Acme Holdings Pte Ltd", registration_number="201912345K",
        )
        assert reapplied.to_status == AccountStatus.PENDING_KYB.value
        application = db_session.get(VerificationApplication, reapplied.data["application_id"])
        assert application.status == ApplicationStatus.PENDING

    def test_sessions_cut_for_holder_wallet(self, db_session, executor, approved, business_account, admin_actor):
        account_id, credential_id = approved
        wallet = business_account.wallet_address

        executor.revoke_credential(credential_id, admin_actor, target_wallet_address=wallet)

        db_session.expire_all()
        assert db_session.query(AuthIdentity).filter(AuthIdentity.wallet_address == wallet).count() == 0

    def test_mismatched_target_wallet_refused(self, db_session, ledger, approved, business_account, admin_actor):
        """Naming another wallet must not leave the holder's sessions alive."""
        account_id, credential_id = approved
        soft = TransitionExecutor(db_session, ledger, revocation_mode="soft")

        with pytest.raises(ValidationFailed) as exc_info:
            soft.revoke_credential(
                credential_id, admin_actor, target_wallet_address="rU6K7V3Po4snVhBBaU29sesqs2qTQJWDw1"
            )

        assert exc_info.value.completed_steps == []
        db_session.expire_all()
        assert db_session.get(CredentialRecord, credential_id).status == CredentialStatus.ACTIVE
        assert db_session.get(Account, account_id).credential_id == credential_id
        assert db_session.query(AuthIdentity).filter(
            AuthIdentity.wallet_address == business_account.wallet_address
        ).count() == 1

    def test_non_admin_refused(self, db_session, executor, approved, business_actor):
        account_id, credential_id = approved

        with pytest.raises(Forbidden):
            executor.revoke_credential(credential_id, business_actor)

        db_session.expire_all()
        assert db_session.get(Account, account_id).credential_id == credential_id

    def test_unknown_revocation_mode(self, db_session, ledger):
        with pytest.raises(ValueError):
            TransitionExecutor(db_session, ledger, revocation_mode="archive")


class TestAssetReview:

    def test_submit_for_review(self, db_session, executor, draft_asset, business_actor):
        result = executor.submit_for_review(draft_asset.id, business_actor)

        db_session.refresh(draft_asset)
        assert draft_asset.status == AssetStatus.PENDING_REVIEW
        assert draft_asset.submitted_at is not None
        assert result.to_status == "pending_review"

    def test_incomplete_metadata_blocks_submission(self, db_session, executor, draft_asset, business_actor):
        draft_asset.legal_documents = [d for d in draft_asset.legal_documents if d["type"] != "spv_incorporation"]
        draft_asset.asset_metadata = {k: v for k, v in draft_asset.asset_metadata.items() if k != "property_type"}
        db_session.commit()

        with pytest.raises(ValidationFailed) as exc_info:
            executor.submit_for_review(draft_asset.id, business_actor)

        assert "Missing required field: property_type" in exc_info.value.errors
        assert "Missing required document: spv_incorporation" in exc_info.value.errors
        db_session.refresh(draft_asset)
        assert draft_asset.status == AssetStatus.DRAFT

    def test_unknown_category_blocks_submission(self, db_session, executor, draft_asset, business_actor):
        draft_asset.category = "fine_art"
        db_session.commit()

        with pytest.raises(ValidationFailed):
            executor.submit_for_review(draft_asset.id, business_actor)

    def test_only_owner_submits(self, executor, draft_asset, consumer_actor):
        with pytest.raises(Forbidden):
            executor.submit_for_review(draft_asset.id, consumer_actor)

    def test_admin_may_submit(self, db_session, executor, draft_asset, admin_actor):
        executor.submit_for_review(draft_asset.id, admin_actor)

        db_session.refresh(draft_asset)
        assert draft_asset.status == AssetStatus.PENDING_REVIEW

    def test_authorize_mints_token(self, db_session, executor, ledger, pending_asset, admin_actor):
        result = executor.authorize_asset(pending_asset.id, admin_actor, notes="All documents verified")

        db_session.refresh(pending_asset)
        assert pending_asset.status == AssetStatus.AUTHORIZED
        assert pending_asset.token_id == result.data["token_id"]
        assert pending_asset.mint_tx_hash == result.data["tx_hash"]
        assert pending_asset.mint_claim is None
        assert pending_asset.reviewed_by == admin_actor.identity_id
        assert pending_asset.authorization_notes == "All documents verified"
        assert pending_asset.authorized_at is not None
        assert ledger.mint_count == 1
        assert result.steps == ["claim_asset", "mint_token", "update_status"]

    def test_non_admin_cannot_authorize(self, db_session, executor, ledger, pending_asset, business_actor):
        with pytest.raises(Forbidden):
            executor.authorize_asset(pending_asset.id, business_actor)

        db_session.refresh(pending_asset)
        assert pending_asset.status == AssetStatus.PENDING_REVIEW
        assert ledger.mint_count == 0

    def test_mint_failure_leaves_no_trace(self, db_session, executor, failing_mint, pending_asset, admin_actor):
        """Prior status kept, claim released, no audit entry. A retry then succeeds."""
        with pytest.raises(LedgerOperationFailed) as exc_info:
            executor.authorize_asset(pending_asset.id, admin_actor)

        assert exc_info.value.result_code == "tecNO_PERMISSION"
        assert exc_info.value.completed_steps == ["claim_asset"]
        db_session.refresh(pending_asset)
        assert pending_asset.status == AssetStatus.PENDING_REVIEW
        assert pending_asset.mint_claim is None
        assert pending_asset.token_id is None
        assert db_session.query(AuditEntry).filter(
            AuditEntry.new_status == AssetStatus.AUTHORIZED
        ).count() == 0

        failing_mint.mint_error = None
        executor.authorize_asset(pending_asset.id, admin_actor)
        db_session.refresh(pending_asset)
        assert pending_asset.status == AssetStatus.AUTHORIZED

    def test_ledger_unavailable_releases_claim(self, db_session, executor, ledger, pending_asset, admin_actor):
        ledger.mint_error = LedgerUnavailable("XRPL node unreachable during NFTokenMint")

        with pytest.raises(LedgerUnavailable):
            executor.authorize_asset(pending_asset.id, admin_actor)

        db_session.refresh(pending_asset)
        assert pending_asset.mint_claim is None

    def test_uncertain_mint_keeps_claim(self, db_session, executor, ledger, pending_asset, admin_actor):
        """A mint that reached the ledger blocks blind retries."""
        ledger.mint_error = LedgerOperationFailed(
            "NFTokenMint validated but the token id could not be read from the response",
            result_code="tesSUCCESS",
            ledger_kind=LedgerErrorKind.MALFORMED_RESPONSE,
            tx_hash="E3FE6EA3D48F0C2B639448020EA4F03D4F4F8FFDB243A852A0F59177921B4879",
        )

        with pytest.raises(LedgerOperationFailed):
            executor.authorize_asset(pending_asset.id, admin_actor)

        db_session.refresh(pending_asset)
        assert pending_asset.mint_claim is not None
        assert pending_asset.status == AssetStatus.PENDING_REVIEW

        ledger.mint_error = None
        with pytest.raises(InvalidTransition):
            executor.authorize_asset(pending_asset.id, admin_actor)
        assert ledger.mint_count == 0

        # Nor can the asset be rejected out from under the pending mint
        with pytest.raises(InvalidTransition):
            executor.reject_asset(pending_asset.id, admin_actor, reason="Duplicate listing")
        db_session.refresh(pending_asset)
        assert pending_asset.status == AssetStatus.PENDING_REVIEW

    def test_reject_requires_reason(self, db_session, executor, pending_asset, admin_actor):
        with pytest.raises(ValidationFailed):
            executor.reject_asset(pending_asset.id, admin_actor)

        db_session.refresh(pending_asset)
        assert pending_asset.status == AssetStatus.PENDING_REVIEW

    def test_reject(self, db_session, executor, pending_asset, admin_actor):
        executor.reject_asset(pending_asset.id, admin_actor, reason="Title chain incomplete")

        db_session.refresh(pending_asset)
        assert pending_asset.status == AssetStatus.REJECTED
        assert pending_asset.rejection_reason == "Title chain incomplete"
        assert pending_asset.rejected_at is not None

    def test_authorize_draft_from_admin_desk(self, db_session, executor, ledger, draft_asset, admin_actor):
        result = executor.authorize_draft(draft_asset.id, admin_actor)

        db_session.refresh(draft_asset)
        assert draft_asset.status == AssetStatus.AUTHORIZED
        assert result.action == "authorize_draft"
        assert ledger.mint_count == 1

    def test_reject_draft_from_admin_desk(self, db_session, executor, draft_asset, admin_actor):
        executor.reject_draft(draft_asset.id, admin_actor, reason="Not a real-world asset")

        db_session.refresh(draft_asset)
        assert draft_asset.status == AssetStatus.REJECTED

    def test_draft_actions_refused_on_pending(self, executor, pending_asset, admin_actor):
        with pytest.raises(InvalidTransition):
            executor.authorize_draft(pending_asset.id, admin_actor)


class TestConcurrentAuthorize:
    """Two sessions on one file database race on the same pending asset."""

    @pytest.fixture
    def race(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
        Base.metadata.create_all(engine)
        SessionFactory = sessionmaker(bind=engine)
        first, second = SessionFactory(), SessionFactory()

        asset = AssetListing(
            owner_wallet_address="rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh",
            name="Harbour Tower",
            category="real_estate",
            valuation=Decimal("1000000"),
            status=AssetStatus.PENDING_REVIEW,
        )
        first.add(asset)
        first.commit()

        yield first, second, asset.id

        first.close()
        second.close()
        engine.dispose()

    def test_concurrent_authorize_mints_once(self, race, ledger, admin_actor):
        """
        The second authorize arrives while the first is mid-mint; the claim
        refuses it before it reaches the ledger.
        """
        first, second, asset_id = race
        refused = []

        def authorize_again():
            try:
                TransitionExecutor(second, ledger).authorize_asset(asset_id, admin_actor)
            except InvalidTransition as e:
                refused.append(e)

        ledger.on_mint = authorize_again
        TransitionExecutor(first, ledger).authorize_asset(asset_id, admin_actor)
        ledger.on_mint = None

        assert len(refused) == 1
        assert ledger.mint_count == 1

        second.expire_all()
        stored = second.get(AssetListing, asset_id)
        assert stored.status == AssetStatus.AUTHORIZED
        assert second.query(AuditEntry).filter(AuditEntry.asset_id == asset_id).count() == 1

    def test_reject_during_mint_refused(self, race, ledger, admin_actor):
        """A reject landing mid-mint cannot strand a minted token off the record."""
        first, second, asset_id = race
        refused = []

        def reject_meanwhile():
            try:
                TransitionExecutor(second, ledger).reject_asset(asset_id, admin_actor, reason="Duplicate")
            except InvalidTransition as e:
                refused.append(e)

        ledger.on_mint = reject_meanwhile
        result = TransitionExecutor(first, ledger).authorize_asset(asset_id, admin_actor)
        ledger.on_mint = None

        assert len(refused) == 1
        assert ledger.mint_count == 1

        second.expire_all()
        stored = second.get(AssetListing, asset_id)
        assert stored.status == AssetStatus.AUTHORIZED
        assert stored.token_id == result.data["token_id"]
        assert stored.mint_tx_hash == result.data["tx_hash"]
        assert stored.mint_claim is None
        history = second.query(AuditEntry).filter(AuditEntry.asset_id == asset_id).all()
        assert [entry.new_status for entry in history] == [AssetStatus.AUTHORIZED]

    def test_lost_final_write_reports_minted_token(self, race, ledger, admin_actor):
        """If the asset moves anyway, the error names the token for reconciliation."""
        first, second, asset_id = race

        def move_asset():
            # Bypasses the executor, as a manual datastore edit would
            second.execute(
                update(AssetListing).where(AssetListing.id == asset_id)
                .values(status=AssetStatus.REJECTED)
            )
            second.commit()

        ledger.on_mint = move_asset
        with pytest.raises(PersistenceFailed) as exc_info:
            TransitionExecutor(first, ledger).authorize_asset(asset_id, admin_actor)
        ledger.on_mint = None

        assert ledger.mint_count == 1
        assert f"{1:064X}" in exc_info.value.message
        assert exc_info.value.completed_steps == ["claim_asset", "mint_token"]

        second.expire_all()
        assert second.get(AssetListing, asset_id).mint_claim is not None


class TestActorContext:

    def test_role_drives_admin_checks(self, admin_actor, business_actor):
        assert admin_actor.is_admin
        assert not business_actor.is_admin
        assert business_actor.role == IdentityRole.USER
