"""FastAPI dependencies: caller identity, ledger gateway, transition executor."""
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from zerogate.config import get_settings
from zerogate.database import get_db
from zerogate.models.enums import IdentityRole
from zerogate.services.errors import Unauthorized
from zerogate.services.identity import ActorContext, decode_session_token
from zerogate.services.ledger import XrplLedgerGateway
from zerogate.services.persistence import PersistenceGateway
from zerogate.services.state_machine import TransitionExecutor

# Errors are raised as WorkflowError so they get the same body and CORS headers as everything else
bearer = HTTPBearer(auto_error=False)


def get_actor(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db)
) -> ActorContext:
    """
    Resolve the caller from the bearer token.

    The token's subject must still name a live AuthIdentity; revoking a
    credential deletes that row and so ends every session for the wallet.
    Role and account come from the row, not the token.
    """
    if creds is None:
        raise Unauthorized("Missing Authorization header")

    payload = decode_session_token(creds.credentials)
    identity_id = payload.get("sub")
    if not identity_id:
        raise Unauthorized("Token missing subject")

    identity = PersistenceGateway(db).get_identity(identity_id)
    if identity is None:
        raise Unauthorized("Session has been revoked")

    actor = ActorContext(
        identity_id=identity.id,
        wallet_address=identity.wallet_address,
        role=identity.role or IdentityRole.USER,
        account_id=identity.account_id,
    )
    request.state.actor = actor
    return actor


def get_ledger():
    return XrplLedgerGateway.from_settings(get_settings())


def get_executor(db: Session = Depends(get_db), ledger=Depends(get_ledger)) -> TransitionExecutor:
    return TransitionExecutor(db, ledger, revocation_mode=get_settings().revocation_mode)
