"""
ExternalLedgerGateway - the seam between transitions and the XRP Ledger.

Failures come back as typed errors (LedgerOperationFailed with a
LedgerErrorKind, or LedgerUnavailable); nothing upstream inspects message text.
Nothing here retries.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import httpx
from xrpl.clients import JsonRpcClient, XRPLRequestFailureException
from xrpl.models.requests import AccountNFTs
from xrpl.models.transactions import (
    Memo,
    NFTokenCreateOffer,
    NFTokenCreateOfferFlag,
    NFTokenMint,
    NFTokenMintFlag,
    Payment,
)
from xrpl.transaction import XRPLReliableSubmissionException, submit_and_wait
from xrpl.utils import hex_to_str, str_to_hex
from xrpl.wallet import Wallet

from zerogate.services.asset_schemas import TokenMetadata
from zerogate.services.errors import LedgerErrorKind, LedgerOperationFailed, LedgerUnavailable

logger = logging.getLogger(__name__)

SUCCESS = "tesSUCCESS"

# Engine results meaning "this effect is already on the ledger"
ALREADY_APPLIED_CODES = {"tefALREADY", "temREDUNDANT", "tecDUPLICATE"}

CREDENTIAL_MEMO_TYPE = "CredentialType"

_ENGINE_CODE = re.compile(r"\bte[scfmlr][A-Z_]+\b")


@dataclass
class MintResult:
    token_id: str
    tx_hash: str
    offer_tx_hash: Optional[str] = None


@dataclass
class CredentialIssuance:
    payload: Dict[str, Any]
    tx_hash: Optional[str] = None


@dataclass
class TokenDescriptor:
    token_id: str
    issuer: Optional[str]
    taxon: Optional[int]
    flags: int = 0
    uri: Optional[str] = None


class ExternalLedgerGateway(Protocol):
    def mint_asset_token(self, metadata: TokenMetadata, destination: Optional[str] = None) -> MintResult:
        ...

    def issue_credential_record(self, issuer: str, subject_address: str,
                                credential_type: str, claims: Dict[str, Any]) -> CredentialIssuance:
        ...

    def fetch_tokens_for_address(self, address: str) -> List[TokenDescriptor]:
        ...


def classify_engine_result(code: Optional[str]) -> Optional[LedgerErrorKind]:
    """None for success, otherwise the failure kind."""
    if code == SUCCESS:
        return None
    if code in ALREADY_APPLIED_CODES:
        return LedgerErrorKind.ALREADY_APPLIED
    return LedgerErrorKind.TRANSACTION_FAILED


def engine_code_from_text(text: str) -> Optional[str]:
    """Pull the engine result code out of an SDK exception message."""
    match = _ENGINE_CODE.search(text or "")
    return match.group(0) if match else None


def parse_minted_token_id(result: Dict[str, Any]) -> Optional[str]:
    """
    Find the NFTokenID created by a mint.

    Newer servers report it directly as meta.nftoken_id; older ones only
    expose it inside the NFTokenPage entries of meta.AffectedNodes, where
    the new token is the one present in FinalFields but not PreviousFields.
    """
    meta = result.get("meta") or {}
    if not isinstance(meta, dict):
        return None
    if meta.get("nftoken_id"):
        return meta["nftoken_id"]

    for node in meta.get("AffectedNodes") or []:
        created = node.get("CreatedNode")
        if created and created.get("LedgerEntryType") == "NFTokenPage":
            tokens = _token_ids((created.get("NewFields") or {}).get("NFTokens"))
            if tokens:
                return tokens[0]

        modified = node.get("ModifiedNode")
        if modified and modified.get("LedgerEntryType") == "NFTokenPage":
            final = _token_ids((modified.get("FinalFields") or {}).get("NFTokens"))
            previous = set(_token_ids((modified.get("PreviousFields") or {}).get("NFTokens")))
            added = [t for t in final if t not in previous]
            if added:
                return added[0]
            if final and not previous:
                return final[-1]
    return None


def _token_ids(entries) -> List[str]:
    ids = []
    for entry in entries or []:
        token = entry.get("NFToken") or {}
        if token.get("NFTokenID"):
            ids.append(token["NFTokenID"])
    return ids


def build_credential_payload(issuer: str, subject_address: str, credential_type: str,
                             claims: Dict[str, Any]) -> Dict[str, Any]:
    """W3C-VC shaped credential document bound to the subject wallet."""
    issued = datetime.utcnow().isoformat() + "Z"
    return {
        "@context": ["https://www.w3.org/2018/credentials/v1"],
        "type": ["VerifiableCredential", credential_type],
        "issuer": issuer,
        "issuanceDate": issued,
        "credentialSubject": {"id": f"did:xrpl:{subject_address}", **claims},
    }


class XrplLedgerGateway:
    """xrpl-py implementation. The issuer wallet signs every transaction."""

    def __init__(self, client: JsonRpcClient, issuer_seed: Optional[str] = None,
                 anchor_credentials: bool = False):
        self.client = client
        self.issuer_seed = issuer_seed
        self.anchor_credentials = anchor_credentials
        self._wallet: Optional[Wallet] = None

    @classmethod
    def from_settings(cls, settings) -> "XrplLedgerGateway":
        return cls(
            JsonRpcClient(settings.xrpl_rpc_url),
            issuer_seed=settings.xrpl_issuer_seed,
            anchor_credentials=settings.anchor_credentials_on_ledger,
        )

    @property
    def wallet(self) -> Wallet:
        if self._wallet is None:
            if not self.issuer_seed:
                raise LedgerUnavailable("XRPL issuer wallet is not configured (XRPL_ISSUER_SEED)")
            self._wallet = Wallet.from_seed(self.issuer_seed)
        return self._wallet

    # ─────────────────────────────────────────────
    # TRANSACTIONS
    # ─────────────────────────────────────────────

    def _submit(self, tx, label: str) -> Dict[str, Any]:
        """Sign, submit and wait for validation; return the validated result."""
        try:
            response = submit_and_wait(tx, self.client, self.wallet)
        except XRPLReliableSubmissionException as e:
            code = engine_code_from_text(str(e))
            logger.warning("xrpl submission failed", extra={"tx": label, "result_code": code})
            raise LedgerOperationFailed(
                f"{label} failed: {code or e}",
                result_code=code,
                ledger_kind=classify_engine_result(code) or LedgerErrorKind.TRANSACTION_FAILED,
            )
        except XRPLRequestFailureException as e:
            code = getattr(e, "error", None)
            raise LedgerOperationFailed(f"{label} rejected by server: {code or e}", result_code=code)
        except (httpx.HTTPError, OSError) as e:
            raise LedgerUnavailable(f"XRPL node unreachable during {label}: {e}")

        result = response.result or {}
        code = (result.get("meta") or {}).get("TransactionResult")
        kind = classify_engine_result(code)
        if kind is not None:
            raise LedgerOperationFailed(
                f"{label} failed: {code}",
                result_code=code,
                ledger_kind=kind,
                tx_hash=result.get("hash"),
            )
        logger.info("xrpl transaction validated", extra={"tx": label, "tx_hash": result.get("hash")})
        return result

    def mint_asset_token(self, metadata: TokenMetadata, destination: Optional[str] = None) -> MintResult:
        issuer = self.wallet.classic_address
        mint = NFTokenMint(
            account=issuer,
            nftoken_taxon=0,
            flags=NFTokenMintFlag.TF_TRANSFERABLE,
            transfer_fee=0,
            uri=metadata.to_uri_hex(),
        )
        result = self._submit(mint, "NFTokenMint")

        tx_hash = result.get("hash")
        token_id = parse_minted_token_id(result)
        if not token_id or not tx_hash:
            raise LedgerOperationFailed(
                "NFTokenMint validated but the token id could not be read from the response",
                result_code=SUCCESS,
                ledger_kind=LedgerErrorKind.MALFORMED_RESPONSE,
                tx_hash=tx_hash or "unknown",
            )

        offer_hash = None
        if destination and destination != issuer:
            offer_hash = self._offer_to(token_id, destination)
        return MintResult(token_id=token_id, tx_hash=tx_hash, offer_tx_hash=offer_hash)

    def _offer_to(self, token_id: str, destination: str) -> Optional[str]:
        """Zero-amount sell offer so the owner can claim the token. Best effort."""
        offer = NFTokenCreateOffer(
            account=self.wallet.classic_address,
            nftoken_id=token_id,
            amount="0",
            destination=destination,
            flags=NFTokenCreateOfferFlag.TF_SELL_NFTOKEN,
        )
        try:
            return self._submit(offer, "NFTokenCreateOffer").get("hash")
        except LedgerOperationFailed as e:
            if e.ledger_kind == LedgerErrorKind.ALREADY_APPLIED:
                return None
            logger.warning(
                "sell offer not created; owner must be sent the token manually",
                extra={"token_id": token_id, "destination": destination, "result_code": e.result_code},
            )
            return None

    def issue_credential_record(self, issuer: str, subject_address: str,
                                credential_type: str, claims: Dict[str, Any]) -> CredentialIssuance:
        """
        Build the credential document; optionally anchor it on-ledger.

        Anchoring is a 1-drop Payment from the issuer wallet to the subject
        with a CredentialType memo.
        """
        payload = build_credential_payload(issuer, subject_address, credential_type, claims)
        if not self.anchor_credentials:
            return CredentialIssuance(payload=payload)

        payment = Payment(
            account=self.wallet.classic_address,
            destination=subject_address,
            amount="1",
            memos=[Memo(
                memo_type=str_to_hex(CREDENTIAL_MEMO_TYPE),
                memo_data=str_to_hex(credential_type),
                memo_format=str_to_hex("text/plain"),
            )],
        )
        result = self._submit(payment, "CredentialPayment")
        return CredentialIssuance(payload=payload, tx_hash=result.get("hash"))

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def fetch_tokens_for_address(self, address: str) -> List[TokenDescriptor]:
        tokens: List[TokenDescriptor] = []
        marker = None
        while True:
            try:
                response = self.client.request(
                    AccountNFTs(account=address, ledger_index="validated", marker=marker)
                )
            except (httpx.HTTPError, OSError) as e:
                raise LedgerUnavailable(f"XRPL node unreachable: {e}")

            if not response.is_successful():
                code = (response.result or {}).get("error")
                raise LedgerOperationFailed(f"account_nfts failed: {code}", result_code=code)

            for nft in response.result.get("account_nfts", []):
                uri = nft.get("URI")
                tokens.append(TokenDescriptor(
                    token_id=nft["NFTokenID"],
                    issuer=nft.get("Issuer"),
                    taxon=nft.get("NFTokenTaxon"),
                    flags=nft.get("Flags", 0),
                    uri=_decode_uri(uri),
                ))
            marker = response.result.get("marker")
            if not marker:
                return tokens


def _decode_uri(uri: Optional[str]) -> Optional[str]:
    if not uri:
        return None
    try:
        return hex_to_str(uri)
    except (ValueError, UnicodeDecodeError):
        # Truncated metadata can end mid-character; keep the raw hex
        return uri
