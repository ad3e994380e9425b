"""
License remixer.

Starts from a named template (or from scratch for "custom"), applies the
creator's overrides and produces two things:
- a human-readable terms document (JSON, optionally rendered as markdown)
- the matching LicenseTermsConfig, ready to pass as `licenseTerms` to
  /api/prepare-mint

When the document is pinned, its gateway URL becomes the terms' `uri`, so the
on-chain PIL terms point at the text the creator actually wrote.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from config import NetworkConfig
from integrations.ipfs import ContentStore
from schemas.api import MAX_REMIX_REVENUE_SHARE, LicenseRemixRequest
from schemas.domain import LicenseTermsConfig
from services.hashing import canonical_document, hash_metadata
from services.parameter_assembler import DEFAULT_MINTING_FEE_WEI, LicenseTerms, resolve_license_terms
from utils.errors import ValidationError

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = "1.0"

DEFAULT_PROHIBITED_USES = (
    "Hate speech or discriminatory content",
    "Illegal activities",
    "Misrepresentation as original creator",
)


@dataclass(frozen=True)
class LicenseTemplate:
    name: str
    description: str
    use_case: str
    commercial_use: bool
    derivatives_allowed: bool
    attribution_required: bool
    reciprocal: bool
    revenue_share_percentage: float
    transferable: bool
    prohibited_uses: Tuple[str, ...]

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "useCase": self.use_case,
            "parameters": {
                "commercialUse": self.commercial_use,
                "derivativesAllowed": self.derivatives_allowed,
                "attributionRequired": self.attribution_required,
                "reciprocal": self.reciprocal,
                "revenueSharePercentage": self.revenue_share_percentage,
                "transferable": self.transferable,
                "prohibitedUses": list(self.prohibited_uses),
            },
        }


TEMPLATES: Dict[str, LicenseTemplate] = {
    "commercial-remix": LicenseTemplate(
        name="Commercial Remix License",
        description="Allows commercial use and derivatives with revenue sharing",
        use_case="Music, art, content that you want to monetize while allowing remixes",
        commercial_use=True,
        derivatives_allowed=True,
        attribution_required=True,
        reciprocal=True,
        revenue_share_percentage=10,
        transferable=True,
        prohibited_uses=DEFAULT_PROHIBITED_USES,
    ),
    "non-commercial": LicenseTemplate(
        name="Non-Commercial Social Remixing",
        description="Free use for non-commercial purposes with attribution",
        use_case="Educational content, open source projects, community art",
        commercial_use=False,
        derivatives_allowed=True,
        attribution_required=True,
        reciprocal=True,
        revenue_share_percentage=0,
        transferable=True,
        prohibited_uses=(
            "Commercial use without permission",
            "Removal of attribution",
            "Hate speech or discriminatory content",
        ),
    ),
    "commercial-no-derivatives": LicenseTemplate(
        name="Commercial License (No Derivatives)",
        description="Commercial use allowed but no modifications",
        use_case="Photography, finished artwork, branded content",
        commercial_use=True,
        derivatives_allowed=False,
        attribution_required=True,
        reciprocal=False,
        revenue_share_percentage=15,
        transferable=True,
        prohibited_uses=(
            "Modification or derivative works",
            "Resale as original work",
            "Use without attribution",
        ),
    ),
    "exclusive-commercial": LicenseTemplate(
        name="Exclusive Commercial License",
        description="High-value exclusive licensing with significant revenue share",
        use_case="Premium content, exclusive partnerships, high-value IP",
        commercial_use=True,
        derivatives_allowed=True,
        attribution_required=True,
        reciprocal=False,
        revenue_share_percentage=25,
        transferable=False,
        prohibited_uses=(
            "Sublicensing without permission",
            "Competing uses",
            "Brand dilution",
        ),
    ),
}

TEMPLATE_EXAMPLES = {
    "music": "commercial-remix",
    "art": "commercial-no-derivatives",
    "education": "non-commercial",
    "premium": "exclusive-commercial",
}

COMMON_PERCENTAGES = [0, 5, 10, 15, 20, 25]

CUSTOMIZATION_TIPS = [
    "Adjust revenue share percentage based on your IP value",
    "Add specific prohibited uses for your industry",
    "Consider territory restrictions for global licensing",
    "Set appropriate minting fees to prevent spam",
]

ATTRIBUTION_EXAMPLES = [
    'In video credits: "Music by [Creator] - Story Protocol License"',
    'In app footer: "Artwork licensed from [Creator] via Story Protocol"',
    'In derivative work: "Remix of [Original] by [Creator]"',
]


@dataclass(frozen=True)
class RemixedTerms:
    """Template values with the creator's overrides applied"""
    license_type: str
    commercial_use: bool
    derivatives_allowed: bool
    attribution_required: bool
    reciprocal: bool
    revenue_share: float
    transferable: bool
    prohibited_uses: Tuple[str, ...]
    minting_fee: int
    currency: Optional[str]
    expiration: int


def template_catalog() -> Dict[str, Any]:
    return {
        "templates": {key: template.describe() for key, template in TEMPLATES.items()},
        "revenueShareRange": {"min": 0, "max": MAX_REMIX_REVENUE_SHARE},
        "commonPercentages": COMMON_PERCENTAGES,
        "examples": TEMPLATE_EXAMPLES,
    }


def get_template(name: str) -> LicenseTemplate:
    try:
        return TEMPLATES[name]
    except KeyError:
        raise ValidationError(
            f"Unknown license template '{name}'",
            {"available": sorted(TEMPLATES)},
        )


def _pick(value, default):
    return default if value is None else value


def merge_terms(request: LicenseRemixRequest, network: NetworkConfig) -> RemixedTerms:
    """Overlay the request on its template; custom starts from attribution-on, nothing shared"""
    template = TEMPLATES.get(request.license_type)
    if template is not None:
        base = {
            "commercial_use": template.commercial_use,
            "derivatives_allowed": template.derivatives_allowed,
            "attribution_required": template.attribution_required,
            "reciprocal": template.reciprocal,
            "revenue_share": template.revenue_share_percentage,
            "transferable": template.transferable,
            "prohibited_uses": template.prohibited_uses,
        }
    else:
        base = {
            "commercial_use": request.commercial_use,
            "derivatives_allowed": request.derivatives_allowed,
            "attribution_required": True,
            "reciprocal": False,
            "revenue_share": 0,
            "transferable": True,
            "prohibited_uses": DEFAULT_PROHIBITED_USES,
        }

    commercial = _pick(request.commercial_use, base["commercial_use"])
    derivatives = _pick(request.derivatives_allowed, base["derivatives_allowed"])
    share = _pick(request.revenue_share_percentage, base["revenue_share"])

    problems = []
    if commercial and not share:
        problems.append("Commercial licenses need a revenueSharePercentage above 0")
    if not commercial and share:
        problems.append("revenueSharePercentage requires commercialUse")
    if not commercial and request.minting_fee and int(request.minting_fee):
        problems.append("mintingFee requires commercialUse")
    if problems:
        raise ValidationError("Invalid license terms: " + "; ".join(problems), {"errors": problems})

    if commercial:
        minting_fee = int(_pick(request.minting_fee, DEFAULT_MINTING_FEE_WEI))
        currency = request.currency or network.wip_token
    else:
        minting_fee, currency = 0, None

    return RemixedTerms(
        license_type=request.license_type,
        commercial_use=commercial,
        derivatives_allowed=derivatives,
        attribution_required=_pick(request.attribution_required, base["attribution_required"]),
        # reciprocity only means something when derivatives exist
        reciprocal=derivatives and _pick(request.reciprocal, base["reciprocal"]),
        revenue_share=share,
        transferable=_pick(request.transferable, base["transferable"]),
        prohibited_uses=tuple(_pick(request.prohibited_uses, base["prohibited_uses"])),
        minting_fee=minting_fee,
        currency=currency,
        expiration=int(request.expiration or 0),
    )


def terms_config(terms: RemixedTerms, uri: Optional[str] = None) -> LicenseTermsConfig:
    """The LicenseTermsConfig a registration request would carry for these terms"""
    fields: Dict[str, Any] = {
        "transferable": terms.transferable,
        "expiration": str(terms.expiration),
        "commercial_use": terms.commercial_use,
        "derivatives_allowed": terms.derivatives_allowed,
        "uri": uri,
    }
    if terms.commercial_use:
        fields.update(
            commercial_attribution=terms.attribution_required,
            commercial_rev_share=terms.revenue_share,
            default_minting_fee=str(terms.minting_fee),
            currency=terms.currency,
        )
    if terms.derivatives_allowed:
        fields.update(
            derivatives_attribution=terms.attribution_required,
            derivatives_reciprocal=terms.reciprocal,
        )
    return LicenseTermsConfig(**fields)


def _currency_label(terms: RemixedTerms, network: NetworkConfig) -> Optional[str]:
    if terms.currency is None:
        return None
    if network.wip_token and terms.currency.lower() == network.wip_token.lower():
        return "WIP"
    return terms.currency


def describe_terms(terms: RemixedTerms) -> str:
    kind = "commercial" if terms.commercial_use else "non-commercial"
    derivatives = "with derivative works allowed" if terms.derivatives_allowed else "without derivative works"
    revenue = f" and {terms.revenue_share:g}% revenue sharing" if terms.commercial_use else ""
    return f"This license permits {kind} use {derivatives}{revenue}."


def key_terms(terms: RemixedTerms) -> List[str]:
    lines = [
        f"Commercial use: {'Allowed' if terms.commercial_use else 'Not allowed'}",
        f"Derivative works: {'Allowed' if terms.derivatives_allowed else 'Not allowed'}",
    ]
    if terms.commercial_use:
        lines.append(f"Revenue sharing: {terms.revenue_share:g}%")
    lines.append(f"Attribution: {'Required' if terms.attribution_required else 'Not required'}")
    if terms.reciprocal:
        lines.append("Reciprocal licensing: Required for derivatives")
    return lines


def describe_derivatives(terms: RemixedTerms) -> str:
    if not terms.derivatives_allowed:
        return "Creation of derivative works is not permitted under this license."
    text = "Derivative works are permitted"
    if terms.attribution_required:
        text += " with proper attribution"
    if terms.reciprocal:
        text += " and must use the same license terms"
    return text + "."


def build_license_document(request: LicenseRemixRequest, terms: RemixedTerms, network: NetworkConfig,
                           effective_date: str) -> Dict[str, Any]:
    """Human-readable terms; None values are dropped when the document is canonicalized"""
    currency = _currency_label(terms, network)
    template = TEMPLATES.get(terms.license_type)
    default_title = f"{template.name if template else 'Custom License'} Terms"

    return {
        "title": request.title or default_title,
        "description": request.description,
        "version": DOCUMENT_VERSION,
        "effectiveDate": effective_date,
        "licenseType": terms.license_type,
        "creator": {
            "name": request.creator_name or "IP Creator",
            "address": request.creator_address,
            "email": request.creator_email,
        },
        "summary": {
            "description": describe_terms(terms),
            "keyTerms": key_terms(terms),
            "quickReference": {
                "commercialUse": "Allowed" if terms.commercial_use else "Not allowed",
                "derivatives": "Allowed" if terms.derivatives_allowed else "Not allowed",
                "revenueShare": f"{terms.revenue_share:g}%",
                "attribution": "Required" if terms.attribution_required else "Not required",
                "reciprocal": "Required for derivatives" if terms.reciprocal else "Not required",
            },
        },
        "terms": {
            "permissions": {
                "commercialUse": {
                    "allowed": terms.commercial_use,
                    "revenueShare": terms.revenue_share,
                    "currency": currency,
                    "description": (
                        f"Commercial use is permitted with {terms.revenue_share:g}% revenue sharing."
                        if terms.commercial_use else "Commercial use is not permitted under this license."
                    ),
                },
                "derivativeWorks": {
                    "allowed": terms.derivatives_allowed,
                    "reciprocal": terms.reciprocal,
                    "attribution": terms.attribution_required,
                    "description": describe_derivatives(terms),
                },
                "distribution": {
                    "allowed": True,
                    "transferable": terms.transferable,
                    "description": "Distribution and sharing of the IP Asset is permitted under the terms of this license.",
                },
            },
            "conditions": {
                "attribution": {
                    "required": terms.attribution_required,
                    "format": "Based on [TITLE] by [CREATOR] - Licensed under Story Protocol",
                    "placement": "Must be clearly visible and accessible",
                    "examples": ATTRIBUTION_EXAMPLES if request.include_examples else None,
                },
                "revenueSharing": {
                    "percentage": terms.revenue_share,
                    "currency": currency,
                    "mintingFeeWei": str(terms.minting_fee),
                    "payment": "Automated through Story Protocol smart contracts",
                } if terms.commercial_use else None,
                "registration": {
                    "required": True,
                    "platform": "Story Protocol network",
                    "description": "All commercial uses must be registered on-chain",
                },
            },
            "restrictions": {
                "prohibited": list(terms.prohibited_uses),
                "territory": request.territory or "Worldwide",
                "duration": request.duration or "Perpetual",
                "termination": "Automatic upon breach of license terms",
            },
        },
        "technical": {
            "storyProtocol": {
                "network": network.name,
                "chainId": network.chain_id,
                "explorer": network.protocol_explorer_url,
                "smartContractEnforced": True,
            },
            "expiration": str(terms.expiration),
        },
        "legal": {
            "governingLaw": request.governing_law or "Delaware, United States",
            "disputeResolution": request.dispute_resolution or "Story Protocol arbitration system",
            "liability": 'IP provided "as is" without warranties',
            "compliance": "Users responsible for local law compliance",
        },
        "metadata": {
            "createdAt": effective_date,
            "createdBy": request.creator_address,
            "generator": "Story IP Transaction Preparation API - License Remixer",
            "version": DOCUMENT_VERSION,
        },
    }


def render_markdown(doc: Dict[str, Any]) -> str:
    """Markdown rendering of a license document from build_license_document"""
    terms = doc["terms"]
    conditions = terms["conditions"]
    restrictions = terms["restrictions"]
    chain = doc["technical"]["storyProtocol"]

    lines = [
        f"# {doc['title']}",
        "",
        f"**Version**: {doc['version']}  ",
        f"**Effective Date**: {doc['effectiveDate']}  ",
        f"**Creator**: {doc['creator']['name']} ({doc['creator']['address']})",
        "",
        "## Summary",
        "",
        doc["summary"]["description"],
        "",
        "### Key Terms",
        *[f"- {term}" for term in doc["summary"]["keyTerms"]],
        "",
        "## Permissions",
        "",
        "### Commercial Use",
        terms["permissions"]["commercialUse"]["description"],
        "",
        "### Derivative Works",
        terms["permissions"]["derivativeWorks"]["description"],
        "",
        "## Conditions",
        "",
        "### Attribution",
    ]
    attribution = conditions["attribution"]
    if attribution["required"]:
        lines.append(f'Attribution is required using the format: "{attribution["format"]}"')
        lines.extend(f"- {example}" for example in attribution.get("examples") or [])
    else:
        lines.append("No attribution required")

    sharing = conditions.get("revenueSharing")
    if sharing:
        lines += [
            "",
            "### Revenue Sharing",
            f"- Percentage: {sharing['percentage']}%",
            f"- Currency: {sharing.get('currency') or 'unspecified'}",
            f"- Payment: {sharing['payment']}",
        ]

    lines += [
        "",
        "## Restrictions",
        "",
        "### Prohibited Uses",
        *[f"- {use}" for use in restrictions["prohibited"]],
        "",
        "### Territory and Duration",
        f"- **Territory**: {restrictions['territory']}",
        f"- **Duration**: {restrictions['duration']}",
        "",
        "## Technical Implementation",
        "",
        f"This license is enforced through smart contracts on the {chain['network']} network.",
        "",
        f"- Chain ID: {chain['chainId']}",
        f"- Explorer: {chain['explorer']}",
        "",
        "## Legal Framework",
        "",
        f"- **Governing Law**: {doc['legal']['governingLaw']}",
        f"- **Dispute Resolution**: {doc['legal']['disputeResolution']}",
        "",
        "---",
        "",
        f"*Document Version: {doc['metadata']['version']}*  ",
        f"*Created: {doc['metadata']['createdAt']}*",
    ]
    return "\n".join(lines) + "\n"


async def remix_license(request: LicenseRemixRequest, network: NetworkConfig, store: ContentStore,
                        effective_date: Optional[str] = None) -> Dict[str, Any]:
    """
    Build the terms document, optionally pin it, and return both forms.

    Terms are checked against the PIL rules before anything is pinned, so an
    invalid combination never leaves a document on IPFS.

    Raises:
        ValidationError: terms that PIL would reject
        ContentStoreError: the document could not be pinned
    """
    terms = merge_terms(request, network)
    resolve_license_terms(terms_config(terms), network)

    effective_date = effective_date or datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    document = canonical_document(build_license_document(request, terms, network, effective_date))
    document_hash = hash_metadata(document)

    ipfs = None
    uri = None
    if request.upload_to_ipfs:
        content_id = await store.pin_json(document, f"license-terms-{terms.license_type}.json")
        uri = store.get_url(content_id)
        ipfs = {"hash": content_id, "uri": uri}
        logger.info(f"📜 License terms for {request.creator_address} pinned -> {content_id}")

    license_config = terms_config(terms, uri)
    resolved: LicenseTerms = resolve_license_terms(license_config, network)

    result = {
        "success": True,
        "licenseDocument": document,
        "documentHash": document_hash,
        "licenseTerms": license_config.model_dump(by_alias=True, exclude_none=True),
        "pilTerms": resolved.to_dict(),
        "ipfs": ipfs,
        "usage": {
            "description": "Pass licenseTerms as the licenseTerms field of /api/prepare-mint",
            "endpoint": "/api/prepare-mint",
        },
    }
    if request.format in ("markdown", "both"):
        result["markdown"] = render_markdown(document)
    return result
