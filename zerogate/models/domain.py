"""Domain models - accounts, compliance applications, credentials and assets."""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Enum as SQLEnum, JSON

from zerogate.database import Base
from zerogate.models.enums import (
    AccountType,
    AccountStatus,
    KycStatus,
    ApplicationKind,
    ApplicationStatus,
    CredentialType,
    CredentialStatus,
    AssetStatus,
    IdentityRole
)


def _uuid() -> str:
    return str(uuid.uuid4())


class Account(Base):
    """
    A wallet-identified party ("entity").

    Invariants:
    - At most one Account per wallet address (unique constraint)
    - credential_id, when set, points at an active CredentialRecord whose
      account_id points back here
    """
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=_uuid)
    wallet_address = Column(String(64), nullable=False, unique=True, index=True)
    account_type = Column(SQLEnum(AccountType), nullable=False, default=AccountType.BUSINESS)
    status = Column(SQLEnum(AccountStatus), nullable=False, default=AccountStatus.PENDING_ONBOARDING)
    kyc_status = Column(SQLEnum(KycStatus), nullable=True)  # consumers only

    # Plain column, not a FK: the two rows point at each other and are
    # unlinked before either is deleted
    credential_id = Column(String(36), nullable=True)

    company_name = Column(String, nullable=True)
    corporate_email = Column(String, nullable=True)
    kyc_submitted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class VerificationApplication(Base):
    """
    Submitted KYB (business) or KYC (consumer) compliance data.

    Invariants:
    - Deleted after approval, and only once the credential and the account
      update are durable (data minimization)
    - Retained on rejection; resubmission reuses the row and clears the
      rejection fields
    """
    __tablename__ = "verification_applications"

    id = Column(String(36), primary_key=True, default=_uuid)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    kind = Column(SQLEnum(ApplicationKind), nullable=False)
    wallet_address = Column(String(64), nullable=False)
    status = Column(SQLEnum(ApplicationStatus), nullable=False, default=ApplicationStatus.PENDING)

    # KYB
    legal_name = Column(String, nullable=True)
    registration_number = Column(String, nullable=True)
    jurisdiction = Column(String, nullable=True)

    # KYC
    full_name = Column(String, nullable=True)
    date_of_birth = Column(String, nullable=True)
    nationality = Column(String, nullable=True)
    id_document_number = Column(String, nullable=True)

    documents = Column(JSON, nullable=True)  # [{type, name, uri, hash}]

    submitted_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    rejection_reason = Column(String, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(String, nullable=True)


class CredentialRecord(Base):
    """
    An issued, revocable attestation bound to a wallet.

    Invariants:
    - status=active implies exactly one Account links back to it
    - Revocation clears both links before anything is deleted
    """
    __tablename__ = "credentials"

    id = Column(String(36), primary_key=True, default=_uuid)
    account_id = Column(String(36), nullable=True, index=True)
    wallet_address = Column(String(64), nullable=False, index=True)
    credential_type = Column(SQLEnum(CredentialType), nullable=False)
    status = Column(SQLEnum(CredentialStatus), nullable=False, default=CredentialStatus.ACTIVE)
    issuer_did = Column(String, nullable=False)
    credential_metadata = Column(JSON, nullable=True)
    ledger_tx_hash = Column(String(64), nullable=True)  # set when anchored on-ledger

    issued_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    revoked_at = Column(DateTime, nullable=True)
    revocation_reason = Column(String, nullable=True)


class AssetListing(Base):
    """
    A tokenizable real-world asset moving through review.

    Invariants:
    - Only draft may be submitted; only pending_review may be authorized/rejected
      (the admin desk has its own explicitly named draft actions)
    - authorized carries a non-null token_id
    - rejected carries a non-empty rejection_reason
    - mint_claim is held by at most one authorize attempt at a time
    """
    __tablename__ = "assets"

    id = Column(String(36), primary_key=True, default=_uuid)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=True, index=True)
    owner_wallet_address = Column(String(64), nullable=False)

    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    category = Column(String, nullable=False)
    valuation = Column(Numeric(20, 2), nullable=False)
    currency = Column(String(8), nullable=False, default="USD")
    jurisdiction = Column(String, nullable=True)
    image_uri = Column(String, nullable=True)
    asset_metadata = Column(JSON, nullable=True)
    legal_documents = Column(JSON, nullable=True)

    status = Column(SQLEnum(AssetStatus), nullable=False, default=AssetStatus.DRAFT, index=True)
    token_id = Column(String(64), nullable=True)
    mint_tx_hash = Column(String(64), nullable=True)
    mint_claim = Column(String(36), nullable=True)

    reviewed_by = Column(String, nullable=True)
    authorization_notes = Column(String, nullable=True)
    rejection_reason = Column(String, nullable=True)

    submitted_at = Column(DateTime, nullable=True)
    authorized_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class AuthIdentity(Base):
    """
    The session-bearing identity bound to a wallet.

    Session tokens name this row; deleting it cuts every session at once.
    account_status and credential_id mirror the Account for the read path.
    """
    __tablename__ = "auth_identities"

    id = Column(String(36), primary_key=True, default=_uuid)
    wallet_address = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String, nullable=False)
    role = Column(SQLEnum(IdentityRole), nullable=False, default=IdentityRole.USER)

    account_id = Column(String(36), nullable=True)
    account_status = Column(SQLEnum(AccountStatus), nullable=True)
    credential_id = Column(String(36), nullable=True)

    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
