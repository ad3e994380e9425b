"""Production configuration and environment settings"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


# Largest single file the upload validators accept (video ceiling)
MAX_UPLOAD_FILE_BYTES = 100 * 1024 * 1024


def base64_request_bytes(raw_bytes: int, envelope_slack: int = 1024 * 1024) -> int:
    """JSON body size needed to carry raw_bytes of base64 file data plus the other fields"""
    return 4 * ((raw_bytes + 2) // 3) + envelope_slack


DEFAULT_MAX_REQUEST_BYTES = base64_request_bytes(MAX_UPLOAD_FILE_BYTES)


def _split_urls(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [url.strip() for url in value.split(",") if url.strip()]


@dataclass(frozen=True)
class NetworkConfig:
    """Everything that changes between Story networks"""
    name: str
    chain_id: int
    rpc_url: str
    fallback_rpc_urls: Tuple[str, ...]
    explorer_url: str
    protocol_explorer_url: str
    default_spg_nft_contract: Optional[str]  # collection used when the caller doesn't supply one

    # Story periphery / core contracts
    registration_workflows: Optional[str]
    license_attachment_workflows: Optional[str]
    derivative_workflows: Optional[str]
    licensing_module: Optional[str]
    pil_license_template: Optional[str]
    royalty_module: Optional[str]
    royalty_workflows: Optional[str]
    royalty_policy_lap: Optional[str]
    dispute_module: Optional[str]
    ip_asset_registry: Optional[str]
    wip_token: Optional[str]

    faucet_urls: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_testnet(self) -> bool:
        return self.name == "aeneid"

    @property
    def rpc_urls(self) -> List[str]:
        """Primary RPC first, then fallbacks, without duplicates"""
        urls = [self.rpc_url]
        for url in self.fallback_rpc_urls:
            if url not in urls:
                urls.append(url)
        return urls

    def explorer_address_url(self, address: str) -> str:
        return f"{self.explorer_url}/address/{address}"


# Story deploys its periphery at the same addresses on every network
_STORY_CONTRACTS = {
    "registration_workflows": "0xbe39E1C756e921BD25DF86e7AAa31106d1eb0424",
    "license_attachment_workflows": "0xcC2E862bCee5B6036Db0de6E06Ae87e524a79fd8",
    "derivative_workflows": "0x9e2d496f72C547C2C535B167e06ED8729B374a4f",
    "licensing_module": "0x04fbd8a2e56dd85CFD5500A4A4DfA955B9f1dE6f",
    "pil_license_template": "0x2E896b0b2Fdb7457499B56AAaA4AE55BCB4Cd316",
    "royalty_module": "0xD2f60c40fEbccf6311f8B47c4f2Ec6b040400086",
    "royalty_workflows": "0x9515faE61E0c0447C6AC6dEe5628A2097aFE1890",
    "royalty_policy_lap": "0xBe54FB168b3c982b7AaE60dB6CF75Bd8447b390E",
    "dispute_module": "0x9b7A9c70AFF961C799110954fc06F3093aeb94C5",
    "ip_asset_registry": "0x77319B4031e6eF1250907aa00018B8B1c67a244b",
    "wip_token": "0x1514000000000000000000000000000000000000",
}

_NETWORKS: Dict[str, Dict] = {
    "aeneid": {
        "chain_id": 1315,
        "rpc_url": "https://aeneid.storyrpc.io",
        "fallback_rpc_urls": ("https://testnet.storyrpc.io", "https://aeneid-rpc.story.foundation"),
        "explorer_url": "https://aeneid.storyscan.io",
        "protocol_explorer_url": "https://aeneid.explorer.story.foundation",
        "default_spg_nft_contract": "0xc32A8a0FF3beDDDa58393d022aF433e78739FAbc",
        "faucet_urls": ("https://faucet.story.foundation", "https://testnet.storyscan.xyz/faucet"),
    },
    "mainnet": {
        "chain_id": 1514,
        "rpc_url": "https://mainnet.storyrpc.io",
        "fallback_rpc_urls": ("https://rpc.story.foundation", "https://story-rpc.stakeme.pro"),
        "explorer_url": "https://storyscan.io",
        "protocol_explorer_url": "https://explorer.story.foundation",
        "default_spg_nft_contract": "0x98971c660ac20880b60F86Cc3113eBd979eb3aAE",
        "faucet_urls": (),
    },
}

NETWORK_ALIASES = {"testnet": "aeneid", "aeneid": "aeneid", "mainnet": "mainnet"}


def get_network_config(network: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> NetworkConfig:
    """
    Resolve the network table for `network` (defaults to STORY_NETWORK).

    Any contract can be overridden with an upper-cased env var, e.g.
    SPG_NFT_CONTRACT_ADDRESS or DISPUTE_MODULE_ADDRESS. An empty override
    clears the default.
    """
    env = os.environ if env is None else env
    requested = (network or env.get("STORY_NETWORK") or "aeneid").lower()
    name = NETWORK_ALIASES.get(requested)
    if name is None:
        raise ValueError(f"Unknown STORY_NETWORK '{requested}' (expected one of: {', '.join(sorted(NETWORK_ALIASES))})")

    table = dict(_NETWORKS[name])
    contracts = dict(_STORY_CONTRACTS)

    def _override(env_name: str, current: Optional[str]) -> Optional[str]:
        if env_name in env:
            return env[env_name].strip() or None
        return current

    table["default_spg_nft_contract"] = _override(
        "SPG_NFT_CONTRACT_ADDRESS", table["default_spg_nft_contract"]
    )
    for key in contracts:
        contracts[key] = _override(f"{key.upper()}_ADDRESS", contracts[key])

    default_rpc = table.pop("rpc_url")
    default_fallbacks = table.pop("fallback_rpc_urls")
    rpc_url = env.get("RPC_PROVIDER_URL") or default_rpc
    fallbacks = tuple(_split_urls(env.get("RPC_FALLBACK_URLS"))) or default_fallbacks

    return NetworkConfig(name=name, rpc_url=rpc_url, fallback_rpc_urls=fallbacks, **table, **contracts)


class Config:
    """Application configuration from environment variables"""

    # Environment
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
    IS_PRODUCTION = ENVIRONMENT == "production"
    # Unredacted error details only when development is set explicitly
    EXPOSE_ERROR_DETAILS = os.getenv("ENVIRONMENT") == "development"

    # CORS Configuration
    ALLOWED_ORIGINS: List[str] = []
    allowed_origins_env = os.getenv("ALLOWED_ORIGINS")
    if allowed_origins_env:
        ALLOWED_ORIGINS = [origin.strip() for origin in allowed_origins_env.split(",")]
    elif not IS_PRODUCTION:
        # Development fallback - but warn about it
        ALLOWED_ORIGINS = ["*"]

    # Network selection
    STORY_NETWORK = os.getenv("STORY_NETWORK", "aeneid").lower()

    # Content store (Pinata)
    PINATA_JWT = os.getenv("PINATA_JWT")
    PINATA_API_URL = os.getenv("PINATA_API_URL", "https://api.pinata.cloud")
    IPFS_GATEWAY_URL = os.getenv("IPFS_GATEWAY_URL", "https://gateway.pinata.cloud/ipfs")
    # "strict" propagates upload failures, "mock" fabricates ids (tests/demos only)
    CONTENT_STORE_MODE = os.getenv("CONTENT_STORE_MODE", "strict").lower()

    # Outbound calls
    HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

    # Transaction preparation
    BALANCE_PREFLIGHT_ENABLED = os.getenv("BALANCE_PREFLIGHT_ENABLED", "true").lower() == "true"
    LICENSE_FEE_PER_TOKEN_WEI = int(os.getenv("LICENSE_FEE_PER_TOKEN_WEI", str(10 ** 18)))  # 1 IP

    # Rate Limiting
    RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    STANDARD_RATE_LIMIT = os.getenv("STANDARD_RATE_LIMIT", "10/minute")
    CLI_RATE_LIMIT = os.getenv("CLI_RATE_LIMIT", "30/minute")
    HEALTH_RATE_LIMIT = os.getenv("HEALTH_RATE_LIMIT", "100/minute")

    # Admission
    MAX_REQUEST_BYTES = int(os.getenv("MAX_REQUEST_BYTES", str(DEFAULT_MAX_REQUEST_BYTES)))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    STRUCTURED_LOGGING = os.getenv("STRUCTURED_LOGGING", "true").lower() == "true"

    @classmethod
    def validate(cls):
        """Validate critical configuration at startup"""
        errors = []

        if cls.IS_PRODUCTION and not cls.ALLOWED_ORIGINS:
            errors.append("ALLOWED_ORIGINS must be set in production")

        if cls.STORY_NETWORK not in NETWORK_ALIASES:
            errors.append(f"STORY_NETWORK must be one of {', '.join(sorted(NETWORK_ALIASES))}")

        if cls.CONTENT_STORE_MODE not in ("strict", "mock"):
            errors.append("CONTENT_STORE_MODE must be 'strict' or 'mock'")

        if cls.CONTENT_STORE_MODE == "strict" and not cls.PINATA_JWT:
            errors.append("PINATA_JWT is required when CONTENT_STORE_MODE=strict")

        if cls.IS_PRODUCTION and cls.CONTENT_STORE_MODE == "mock":
            errors.append("CONTENT_STORE_MODE=mock is not allowed in production")

        return errors

    @classmethod
    def get_summary(cls) -> dict:
        """Get configuration summary for logging (without secrets)"""
        return {
            "environment": cls.ENVIRONMENT,
            "network": cls.STORY_NETWORK,
            "content_store_mode": cls.CONTENT_STORE_MODE,
            "pinata_configured": bool(cls.PINATA_JWT),
            "rate_limit_enabled": cls.RATE_LIMIT_ENABLED,
            "balance_preflight": cls.BALANCE_PREFLIGHT_ENABLED,
            "cors_origins_count": len(cls.ALLOWED_ORIGINS),
            "max_request_bytes": cls.MAX_REQUEST_BYTES,
            "structured_logging": cls.STRUCTURED_LOGGING,
        }


config = Config()
