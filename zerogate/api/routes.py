"""API routes: the three function endpoints plus the REST surface around them."""
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from zerogate.api.deps import get_actor, get_executor, get_ledger
from zerogate.api.schemas import (
    AccountSummary,
    AdminActionRequest,
    ApplicationResponse,
    AssetCreate,
    AssetResponse,
    AssetWorkflowRequest,
    AuditEntryResponse,
    CredentialResponse,
    ErrorResponse,
    KybApplicationCreate,
    KycApplicationCreate,
    TokenResponse,
    WalletAuthRequest
)
from zerogate.database import get_db
from zerogate.models.enums import AccountStatus, AccountType, AssetStatus
from zerogate.services.errors import Forbidden, NotImplementedAction, ValidationFailed
from zerogate.services.identity import ActorContext
from zerogate.services.persistence import PersistenceGateway
from zerogate.services.state_machine import REVOCATION_PURGE, TransitionExecutor
from zerogate.services.wallet_auth import WalletAuthenticator

ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 500, 501)
}

functions_router = APIRouter(responses=ERROR_RESPONSES)
router = APIRouter(responses=ERROR_RESPONSES)


def _asset_json(asset) -> dict:
    return AssetResponse.model_validate(asset).model_dump(mode="json")


def _require(value, name: str):
    if not value:
        raise ValidationFailed(f"Missing {name}")
    return value


# Function endpoints
@functions_router.post("/admin-action")
def admin_action(
    body: AdminActionRequest,
    actor: ActorContext = Depends(get_actor),
    executor: TransitionExecutor = Depends(get_executor)
):
    """
    Admin desk actions. Every action requires the admin role.

    approve_kyb / approve_kyc issue the credential and purge the application;
    approve_asset / reject_asset act on drafts directly.
    """
    if not actor.is_admin:
        raise Forbidden("Unauthorized: Admin access required")

    action = body.action
    if action in ("approve_kyb", "approve_kyc"):
        if not body.application_id or not body.issuer_address:
            raise ValidationFailed("Missing applicationId or issuerAddress")
        approve = executor.approve_kyb if action == "approve_kyb" else executor.approve_kyc
        result = approve(
            body.application_id, actor,
            issuer_address=body.issuer_address, entity_id=body.entity_id,
        )
        return {
            "success": True,
            "message": "Approved, Credential Issued, and Data Purged.",
            "credentialId": result.data["credential_id"],
            "entityId": result.data["entity_id"],
        }

    if action == "reject_kyb":
        raise NotImplementedAction("Reject not implemented yet")

    if action == "reject_kyc":
        result = executor.reject_kyc(_require(body.application_id, "applicationId"), actor, reason=body.reason)
        return {"success": True, "message": "KYC application rejected.", "entityId": result.entity_id}

    if action == "revoke_credential":
        result = executor.revoke_credential(
            _require(body.credential_id, "credentialId"), actor,
            account_id=body.entity_id,
            target_wallet_address=body.target_wallet_address,
            reason=body.reason,
        )
        purged = result.data["mode"] == REVOCATION_PURGE
        return {
            "success": True,
            "message": "Credential revoked and account purged." if purged else "Credential revoked.",
            "entityId": result.data["entity_id"],
        }

    if action == "approve_asset":
        result = executor.authorize_draft(
            _require(body.asset_id, "assetId"), actor, notes=body.authorization_notes
        )
        return {
            "success": True,
            "message": "Asset approved and token minted.",
            "tokenId": result.data["token_id"],
            "txHash": result.data["tx_hash"],
        }

    if action == "reject_asset":
        executor.reject_draft(_require(body.asset_id, "assetId"), actor, reason=body.reason)
        return {"success": True, "message": "Asset rejected."}

    raise ValidationFailed("Invalid action")


@functions_router.post("/asset-workflow")
def asset_workflow(
    body: AssetWorkflowRequest,
    actor: ActorContext = Depends(get_actor),
    executor: TransitionExecutor = Depends(get_executor)
):
    """Review pipeline: submit_for_review (owner), authorize / reject (admin)."""
    if body.action == "submit_for_review":
        executor.submit_for_review(body.asset_id, actor)
        verb = "submitted"
    elif body.action == "authorize":
        executor.authorize_asset(body.asset_id, actor, notes=body.authorization_notes)
        verb = "authorized"
    elif body.action == "reject":
        executor.reject_asset(body.asset_id, actor, reason=body.rejection_reason)
        verb = "rejected"
    else:
        raise ValidationFailed(f"Invalid action: {body.action}")

    asset = executor.store.get_asset(body.asset_id)
    return {"success": True, "asset": _asset_json(asset), "message": f"Asset {verb} successfully"}


@functions_router.post("/wallet-auth")
def wallet_auth(body: WalletAuthRequest, db: Session = Depends(get_db)):
    """Sign in with a wallet. Creates the account on first sight."""
    login = WalletAuthenticator(db).authenticate(
        body.wallet_address,
        signature=body.signature,
        message=body.message,
        public_key=body.public_key,
        auth_method=body.auth_method,
        account_type=body.account_type.value if body.account_type else None,
    )
    if login.is_new_user and login.account.account_type == AccountType.BUSINESS:
        message = "Wallet authenticated. Please complete business onboarding."
    elif login.is_new_user:
        message = "Wallet authenticated. Please complete identity verification."
    else:
        message = "Welcome back!"
    return {
        "success": True,
        "isNewUser": login.is_new_user,
        "needsOnboarding": login.needs_onboarding,
        "user": AccountSummary.model_validate(login.account).model_dump(mode="json"),
        "session": login.session,
        "message": message,
    }


# Applications
@router.post("/kyb-applications", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
def submit_kyb_application(
    data: KybApplicationCreate,
    actor: ActorContext = Depends(get_actor),
    executor: TransitionExecutor = Depends(get_executor)
):
    """Business onboarding. Moves the caller's account to pending_kyb."""
    result = executor.onboard_business(
        _require(actor.account_id, "account"), actor,
        legal_name=data.legal_name,
        registration_number=data.registration_number,
        jurisdiction=data.jurisdiction,
        company_name=data.company_name,
        corporate_email=data.corporate_email,
        documents=[d.model_dump() for d in data.documents],
    )
    return executor.store.get_application(result.data["application_id"])


@router.post("/kyc-applications", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
def submit_kyc_application(
    data: KycApplicationCreate,
    actor: ActorContext = Depends(get_actor),
    executor: TransitionExecutor = Depends(get_executor)
):
    """Consumer KYC. A rejected applicant resubmits through the same endpoint."""
    result = executor.submit_kyc(
        _require(actor.account_id, "account"), actor,
        full_name=data.full_name,
        date_of_birth=data.date_of_birth,
        nationality=data.nationality,
        id_document_number=data.id_document_number,
        documents=[d.model_dump() for d in data.documents],
    )
    return executor.store.get_application(result.data["application_id"])


# Assets
@router.post("/assets", response_model=AssetResponse, status_code=status.HTTP_201_CREATED)
def create_asset(data: AssetCreate, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    """Save a draft listing. Only verified business accounts may list assets."""
    store = PersistenceGateway(db)
    account = store.get_account(_require(actor.account_id, "account"))
    if account.account_type != AccountType.BUSINESS or account.status != AccountStatus.ACTIVE:
        raise Forbidden("Only verified business accounts can create assets")

    return store.create_asset(
        account_id=account.id,
        owner_wallet_address=account.wallet_address,
        name=data.name,
        description=data.description,
        category=data.category.value,
        valuation=data.valuation,
        currency=data.currency,
        jurisdiction=data.jurisdiction,
        image_uri=data.image_uri,
        asset_metadata=data.metadata,
        legal_documents=[d.model_dump() for d in data.legal_documents],
        status=AssetStatus.DRAFT,
        created_at=datetime.utcnow(),
    )


@router.get("/assets/{asset_id}", response_model=AssetResponse)
def get_asset(asset_id: str, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    return PersistenceGateway(db).get_asset(asset_id)


@router.get("/assets/{asset_id}/history", response_model=List[AuditEntryResponse])
def get_asset_history(asset_id: str, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    """Audit trail for an asset, oldest first."""
    store = PersistenceGateway(db)
    store.get_asset(asset_id)
    return store.asset_history(asset_id)


# Credentials
@router.get("/credentials", response_model=List[CredentialResponse])
def list_credentials(actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    actor.require_admin("list credentials")
    return PersistenceGateway(db).list_credentials()


# Ledger reads
@router.get("/wallets/{address}/tokens", response_model=List[TokenResponse])
def list_wallet_tokens(address: str, actor: ActorContext = Depends(get_actor), ledger=Depends(get_ledger)):
    """NFTs currently held by a wallet."""
    return [TokenResponse(**vars(token)) for token in ledger.fetch_tokens_for_address(address)]
