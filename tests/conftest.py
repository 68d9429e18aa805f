"""Pytest configuration and shared fixtures."""
import os

# Settings are read once, on first use; pin them before anything imports zerogate
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_WALLETS", '["rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"]')
os.environ.setdefault("LOG_LEVEL", "WARNING")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from zerogate.database import Base, get_db
from zerogate.models.audit import AuditEntry  # noqa: F401
from zerogate.models.domain import Account, AssetListing, AuthIdentity
from zerogate.models.enums import AccountStatus, AccountType, AssetStatus, IdentityRole, KycStatus
from zerogate.services.errors import LedgerOperationFailed
from zerogate.services.identity import ActorContext, create_session_token
from zerogate.services.ledger import CredentialIssuance, MintResult, TokenDescriptor, build_credential_payload
from zerogate.services.state_machine import TransitionExecutor

ADMIN_WALLET = "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"
BUSINESS_WALLET = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"
CONSUMER_WALLET = "rU6K7V3Po4snVhBBaU29sesqs2qTQJWDw1"

REAL_ESTATE_METADATA = {
    "property_address": "12 Harbour Road, Singapore",
    "gross_leasable_area": 5400,
    "valuation_date": "2024-06-30",
    "property_type": "commercial",
}

REAL_ESTATE_DOCUMENTS = [
    {"type": "title_deed", "name": "Title deed", "uri": "ipfs://title"},
    {"type": "valuation_report", "name": "Valuation", "uri": "ipfs://valuation"},
    {"type": "spv_incorporation", "name": "SPV certificate", "uri": "ipfs://spv"},
]


class FakeLedger:
    """
    In-memory ExternalLedgerGateway.

    - mint_error / issue_error: raised instead of succeeding
    - on_mint: called before the mint, e.g. to race a second request
    """

    def __init__(self):
        self.mint_count = 0
        self.issued = []
        self.tokens = {}
        self.mint_error = None
        self.issue_error = None
        self.on_mint = None

    def mint_asset_token(self, metadata, destination=None):
        if self.on_mint is not None:
            self.on_mint()
        if self.mint_error is not None:
            raise self.mint_error
        self.mint_count += 1
        token_id = f"{self.mint_count:064X}"
        self.tokens.setdefault(destination, []).append(
            TokenDescriptor(token_id=token_id, issuer=ADMIN_WALLET, taxon=0, flags=8, uri=metadata.name)
        )
        return MintResult(token_id=token_id, tx_hash=f"MINT{self.mint_count:060X}")

    def issue_credential_record(self, issuer, subject_address, credential_type, claims):
        if self.issue_error is not None:
            raise self.issue_error
        payload = build_credential_payload(issuer, subject_address, credential_type, claims)
        self.issued.append(payload)
        return CredentialIssuance(payload=payload)

    def fetch_tokens_for_address(self, address):
        return list(self.tokens.get(address, []))


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    # One shared connection so the API's worker threads see the same database
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def executor(db_session, ledger):
    return TransitionExecutor(db_session, ledger)


@pytest.fixture
def failing_mint(ledger):
    ledger.mint_error = LedgerOperationFailed("NFTokenMint failed: tecNO_PERMISSION", result_code="tecNO_PERMISSION")
    return ledger


@pytest.fixture
def admin_actor():
    return ActorContext(identity_id="admin-identity", wallet_address=ADMIN_WALLET, role=IdentityRole.ADMIN)


def _account(db_session, **fields):
    account = Account(**fields)
    db_session.add(account)
    db_session.commit()
    db_session.refresh(account)
    return account


@pytest.fixture
def business_account(db_session):
    """A freshly connected business wallet awaiting onboarding."""
    return _account(
        db_session,
        wallet_address=BUSINESS_WALLET,
        account_type=AccountType.BUSINESS,
        status=AccountStatus.PENDING_ONBOARDING,
    )


@pytest.fixture
def business_actor(business_account):
    return ActorContext(
        identity_id="business-identity",
        wallet_address=business_account.wallet_address,
        role=IdentityRole.USER,
        account_id=business_account.id,
    )


@pytest.fixture
def consumer_account(db_session):
    return _account(
        db_session,
        wallet_address=CONSUMER_WALLET,
        account_type=AccountType.CONSUMER,
        status=AccountStatus.PENDING_ONBOARDING,
        kyc_status=KycStatus.NOT_STARTED,
    )


@pytest.fixture
def consumer_actor(consumer_account):
    return ActorContext(
        identity_id="consumer-identity",
        wallet_address=consumer_account.wallet_address,
        role=IdentityRole.USER,
        account_id=consumer_account.id,
    )


@pytest.fixture
def kyb_application(executor, business_account, business_actor):
    """A pending KYB application for business_account."""
    result = executor.onboard_business(
        business_account.id, business_actor,
        legal_name="Acme Holdings Pte Ltd",
        registration_number="201912345K",
        jurisdiction="SG",
        corporate_email="ops@acme.example",
    )
    return executor.store.get_application(result.data["application_id"])


@pytest.fixture
def draft_asset(db_session, business_account):
    """A complete real estate listing in draft."""
    asset = AssetListing(
        account_id=business_account.id,
        owner_wallet_address=business_account.wallet_address,
        name="Harbour Tower",
        description="Grade A office tower",
        category="real_estate",
        valuation=Decimal("12500000.00"),
        currency="USD",
        jurisdiction="SG",
        asset_metadata=dict(REAL_ESTATE_METADATA),
        legal_documents=list(REAL_ESTATE_DOCUMENTS),
        status=AssetStatus.DRAFT,
    )
    db_session.add(asset)
    db_session.commit()
    db_session.refresh(asset)
    return asset


@pytest.fixture
def pending_asset(executor, draft_asset, business_actor):
    executor.submit_for_review(draft_asset.id, business_actor)
    return draft_asset


@pytest.fixture
def client(db_session, ledger):
    """TestClient bound to the test database and the fake ledger."""
    from zerogate.api.deps import get_ledger
    from zerogate.main import app

    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_ledger] = lambda: ledger
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def session_for(db_session):
    """Issue a bearer header for a wallet, creating its AuthIdentity."""
    def _session_for(wallet_address, account=None, role=IdentityRole.USER):
        identity = AuthIdentity(
            wallet_address=wallet_address,
            email=f"{wallet_address.lower()}@test.local",
            role=role,
            account_id=account.id if account is not None else None,
            account_status=account.status if account is not None else None,
        )
        db_session.add(identity)
        db_session.commit()
        db_session.refresh(identity)
        token = create_session_token(identity.id, {"wallet": wallet_address, "role": role.value})
        return {"Authorization": f"Bearer {token}"}
    return _session_for
