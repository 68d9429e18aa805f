"""Enums for ZeroGate - the valid values for every status column."""
from enum import Enum


class AccountType(str, Enum):
    BUSINESS = "business"
    CONSUMER = "consumer"


class AccountStatus(str, Enum):
    """Lifecycle of a wallet-identified party."""
    PENDING_ONBOARDING = "pending_onboarding"
    PENDING_KYB = "pending_kyb"
    ACTIVE = "active"


class KycStatus(str, Enum):
    """Consumer KYC progress, tracked on the Account."""
    NOT_STARTED = "not_started"
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApplicationKind(str, Enum):
    KYB = "kyb"
    KYC = "kyc"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CredentialType(str, Enum):
    BUSINESS_IDENTITY = "BusinessIdentity"
    CONSUMER_IDENTITY = "ConsumerIdentity"


class CredentialStatus(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"
    # Never stored: the row is gone. Used as the registry's terminal state.
    DELETED = "deleted"


class AssetStatus(str, Enum):
    """Review pipeline for a tokenizable asset."""
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    AUTHORIZED = "authorized"
    REJECTED = "rejected"


class AssetCategory(str, Enum):
    REAL_ESTATE = "real_estate"
    FIXED_INCOME = "fixed_income"
    CARBON_CREDITS = "carbon_credits"
    COMMODITIES = "commodities"


class IdentityRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
