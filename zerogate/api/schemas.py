"""Pydantic schemas for request/response validation."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from zerogate.models.enums import (
    AccountStatus,
    AccountType,
    ApplicationKind,
    ApplicationStatus,
    AssetCategory,
    AssetStatus,
    CredentialStatus,
    CredentialType,
    KycStatus
)


class CamelModel(BaseModel):
    """Function endpoints speak camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Function endpoint bodies
class AdminActionRequest(CamelModel):
    action: str = Field(..., min_length=1)
    application_id: Optional[str] = None
    entity_id: Optional[str] = None
    issuer_address: Optional[str] = None
    asset_id: Optional[str] = None
    credential_id: Optional[str] = None
    target_wallet_address: Optional[str] = None
    reason: Optional[str] = None
    authorization_notes: Optional[str] = None


class AssetWorkflowRequest(CamelModel):
    action: str = Field(..., min_length=1)
    asset_id: str = Field(..., min_length=1)
    authorization_notes: Optional[str] = None
    rejection_reason: Optional[str] = None


class WalletAuthRequest(CamelModel):
    wallet_address: Optional[str] = None
    signature: Optional[str] = None
    message: Optional[str] = None
    public_key: Optional[str] = None
    auth_method: Optional[str] = None
    account_type: Optional[AccountType] = None


# Documents attached to applications and assets
class DocumentRef(BaseModel):
    type: str = Field(..., min_length=1)
    name: Optional[str] = None
    uri: Optional[str] = None
    hash: Optional[str] = None


# Applications
class KybApplicationCreate(BaseModel):
    legal_name: str = Field(..., min_length=1)
    registration_number: str = Field(..., min_length=1)
    jurisdiction: Optional[str] = None
    company_name: Optional[str] = None
    corporate_email: Optional[str] = None
    documents: List[DocumentRef] = []


class KycApplicationCreate(BaseModel):
    full_name: str = Field(..., min_length=1)
    date_of_birth: str = Field(..., min_length=1)
    nationality: str = Field(..., min_length=1)
    id_document_number: Optional[str] = None
    documents: List[DocumentRef] = []


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    kind: ApplicationKind
    wallet_address: str
    status: ApplicationStatus
    submitted_at: datetime
    rejection_reason: Optional[str] = None


class AccountSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    wallet_address: str
    account_type: AccountType
    company_name: Optional[str] = None
    status: AccountStatus
    kyc_status: Optional[KycStatus] = None
    corporate_email: Optional[str] = None


# Assets
class AssetCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: AssetCategory
    valuation: Decimal = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=8)
    jurisdiction: Optional[str] = None
    image_uri: Optional[str] = None
    metadata: Dict[str, Any] = {}
    legal_documents: List[DocumentRef] = []


class AssetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: Optional[str]
    owner_wallet_address: str
    name: str
    description: Optional[str]
    category: str
    valuation: Decimal
    currency: str
    jurisdiction: Optional[str]
    image_uri: Optional[str]
    asset_metadata: Optional[dict]
    legal_documents: Optional[list]
    status: AssetStatus
    token_id: Optional[str]
    mint_tx_hash: Optional[str]
    reviewed_by: Optional[str]
    authorization_notes: Optional[str]
    rejection_reason: Optional[str]
    submitted_at: Optional[datetime]
    authorized_at: Optional[datetime]
    rejected_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    asset_id: str
    previous_status: Optional[AssetStatus]
    new_status: AssetStatus
    changed_by: Optional[str]
    change_reason: Optional[str]
    metadata_snapshot: Optional[dict]
    created_at: datetime


# Credentials
class CredentialResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: Optional[str]
    wallet_address: str
    credential_type: CredentialType
    status: CredentialStatus
    issuer_did: str
    ledger_tx_hash: Optional[str]
    issued_at: datetime
    revoked_at: Optional[datetime]


class TokenResponse(BaseModel):
    """An NFT held by a wallet, as reported by the ledger."""
    token_id: str
    issuer: Optional[str]
    taxon: Optional[int]
    flags: int = 0
    uri: Optional[str] = None


# Error response
class ErrorResponse(BaseModel):
    """Body of every refused or failed request."""
    error: str
    kind: Optional[str] = None
    details: Optional[str] = None
    errors: List[str] = []
    completed_steps: List[str] = Field(default_factory=list, alias="completedSteps")
