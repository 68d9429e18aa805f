"""
Per-category asset metadata: a tagged union keyed by category.

Each variant names its required fields and the legal documents a listing must
carry before it can be submitted for review.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from zerogate.models.enums import AssetCategory

# NFT URI limit on XRPL: 256 bytes
MAX_TOKEN_URI_BYTES = 256


@dataclass(frozen=True)
class CategorySchema:
    category: AssetCategory
    required_fields: Tuple[str, ...]
    optional_fields: Tuple[str, ...] = ()
    required_documents: Tuple[str, ...] = ()


SCHEMAS: Dict[AssetCategory, CategorySchema] = {
    AssetCategory.REAL_ESTATE: CategorySchema(
        category=AssetCategory.REAL_ESTATE,
        required_fields=("property_address", "gross_leasable_area", "valuation_date", "property_type"),
        optional_fields=("occupancy_rate", "year_built", "rental_yield", "latitude", "longitude",
                         "zoning", "parking_spaces"),
        required_documents=("title_deed", "valuation_report", "spv_incorporation"),
    ),
    AssetCategory.FIXED_INCOME: CategorySchema(
        category=AssetCategory.FIXED_INCOME,
        required_fields=("maturity_date", "coupon_rate", "payment_frequency", "face_value"),
        optional_fields=("credit_rating", "bond_type", "issuer_credit_rating", "call_date",
                         "put_date", "yield_to_maturity"),
        required_documents=("offering_memorandum", "term_sheet", "trustee_agreement"),
    ),
    AssetCategory.CARBON_CREDITS: CategorySchema(
        category=AssetCategory.CARBON_CREDITS,
        required_fields=("project_type", "vintage_year", "registry_id", "registry", "total_credits"),
        optional_fields=("verification_standard", "project_location", "co2_equivalent_tons",
                         "verification_body", "project_start_date", "project_end_date"),
        required_documents=("verification_report", "certification", "audit_logs"),
    ),
    AssetCategory.COMMODITIES: CategorySchema(
        category=AssetCategory.COMMODITIES,
        required_fields=("commodity_type", "quantity", "unit_of_measure", "storage_location",
                         "quality_grade"),
        optional_fields=("warehouse_receipt_number", "expiry_date", "assay_report", "insurance_value"),
        required_documents=("warehouse_receipt", "quality_certificate", "insurance_policy"),
    ),
}


def get_schema(category: str) -> Optional[CategorySchema]:
    try:
        return SCHEMAS[AssetCategory(category)]
    except ValueError:
        return None


def _is_blank(value) -> bool:
    # 0 is a legitimate value (e.g. coupon_rate), unlike an empty string
    return value is None or (isinstance(value, str) and not value.strip())


def validate_asset_metadata(category: str, metadata: Optional[dict],
                            documents: Optional[List[dict]]) -> List[str]:
    """Return the list of problems; empty means the listing may be submitted."""
    schema = get_schema(category)
    if schema is None:
        return [f"Unknown asset category: {category}"]

    metadata = metadata or {}
    errors = [
        f"Missing required field: {name}"
        for name in schema.required_fields
        if _is_blank(metadata.get(name))
    ]

    present = {doc.get("type") for doc in (documents or []) if doc.get("uri")}
    errors.extend(
        f"Missing required document: {doc_type}"
        for doc_type in schema.required_documents
        if doc_type not in present
    )
    return errors


@dataclass
class TokenMetadata:
    """XLS-24d style payload embedded in the asset NFT."""
    name: str
    description: str
    category: str
    valuation: str
    currency: str
    jurisdiction: Optional[str]
    image: Optional[str]
    issued_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> dict:
        return {
            "nftType": "rwa.v0",
            "name": self.name,
            "description": self.description,
            "image": self.image,
            "attributes": [
                {"trait_type": "Asset Category", "value": self.category},
                {"trait_type": "Valuation", "value": self.valuation},
                {"trait_type": "Currency", "value": self.currency},
                {"trait_type": "Origin Country", "value": self.jurisdiction},
                {"trait_type": "Issuance Date", "value": self.issued_at},
            ],
        }

    def to_uri_hex(self) -> str:
        """Compact JSON, UTF-8, hex; truncated to the ledger's URI limit."""
        raw = json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")
        return raw[:MAX_TOKEN_URI_BYTES].hex().upper()


def build_token_metadata(asset) -> TokenMetadata:
    return TokenMetadata(
        name=asset.name,
        description=asset.description or "",
        category=asset.category,
        valuation=str(asset.valuation),
        currency=asset.currency,
        jurisdiction=asset.jurisdiction,
        image=asset.image_uri,
    )
