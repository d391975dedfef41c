"""
Configuration settings for the dropship lister
"""
import os
import logging
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

from .models import PricingSettings, PricingTable, PricingTier

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

PRODUCTION_API_URL = "https://api.ebay.com"
SANDBOX_API_URL = "https://api.sandbox.ebay.com"

CHARM_STRATEGIES = ("always_99", "always_49", "tiered")

# (max_price, multiplier) x 6, then the catch-all multiplier
DEFAULT_PRICING_TIERS = {
    "amazon": ([(10, 2.5), (15, 2.3), (20, 2.1), (30, 1.95), (40, 1.85), (60, 1.75)], 1.65),
    "yami": ([(8, 2.8), (12, 2.5), (18, 2.3), (25, 2.1), (35, 1.95), (50, 1.85)], 1.75),
    "costco": ([(15, 2.2), (25, 2.0), (40, 1.85), (60, 1.7), (80, 1.6), (100, 1.5)], 1.4),
}


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete"""
    pass


def _key(name: str, suffix: str) -> str:
    """Environment key for an account suffix (EBAY_APP_ID -> EBAY_APP_ID_2)"""
    return f"{name}_{suffix}" if suffix else name


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")


class Config:
    """Seller account and pipeline configuration"""

    def __init__(self, suffix: str = ""):
        load_dotenv()
        self.suffix = suffix

        # Required eBay credentials
        self.ebay_app_id = os.getenv(_key('EBAY_APP_ID', suffix))
        self.ebay_client_secret = os.getenv(_key('EBAY_CLIENT_SECRET', suffix))

        # User token (refreshed from the stored refresh token)
        self.ebay_user_token = os.getenv(_key('EBAY_USER_TOKEN', suffix), '')
        self.ebay_refresh_token = os.getenv(_key('EBAY_REFRESH_TOKEN', suffix), '')

        self.ebay_environment = os.getenv(_key('EBAY_ENVIRONMENT', suffix), 'PRODUCTION').upper()
        if self.ebay_environment not in ('PRODUCTION', 'SANDBOX'):
            raise ConfigurationError("EBAY_ENVIRONMENT must be 'PRODUCTION' or 'SANDBOX'")

        # Business policies attached to every offer
        self.payment_policy_id = os.getenv(_key('EBAY_PAYMENT_POLICY_ID', suffix), '')
        self.return_policy_id = os.getenv(_key('EBAY_RETURN_POLICY_ID', suffix), '')
        self.fulfillment_policy_id = os.getenv(_key('EBAY_FULFILLMENT_POLICY_ID', suffix), '')

        # Listing defaults
        self.marketplace_id = os.getenv('EBAY_MARKETPLACE_ID', 'EBAY_US')
        self.merchant_location_key = os.getenv('EBAY_LOCATION_KEY', 'us_warehouse')
        self.location_postal_code = os.getenv('EBAY_LOCATION_POSTAL_CODE', '10001')
        self.default_inventory_quantity = _env_int('DEFAULT_INVENTORY_QUANTITY', 3)

        # LLM and embeddings
        self.openai_api_key = os.getenv('OPENAI_API_KEY', '')
        self.llm_model = os.getenv('LLM_MODEL', 'gpt-4o-mini')
        self.embedding_model = os.getenv('EMBEDDING_MODEL', 'text-embedding-3-small')

        # Category selection
        self.category_top_k = _env_int('CATEGORY_TOP_K', 3)
        self.category_cache_max_age_days = _env_int('CATEGORY_CACHE_MAX_AGE_DAYS', 90)
        self.fallback_category_id = os.getenv('FALLBACK_CATEGORY_ID', '360')
        self.fallback_category_name = os.getenv('FALLBACK_CATEGORY_NAME', 'Art Prints')

        # Pagination
        self.page_delay_seconds = _env_float('PAGE_DELAY_SECONDS', 0.15)

        # Local snapshots and the listings store
        self.data_dir = Path(os.getenv('DROPSHIP_DATA_DIR', str(Path.home() / '.dropship_lister')))

    @property
    def api_base_url(self) -> str:
        return PRODUCTION_API_URL if self.ebay_environment == 'PRODUCTION' else SANDBOX_API_URL

    @property
    def token_url(self) -> str:
        return f"{self.api_base_url}/identity/v1/oauth2/token"

    @property
    def category_cache_file(self) -> Path:
        return self.data_dir / 'ebay_categories_cache.json'

    @property
    def vector_index_file(self) -> Path:
        return self.data_dir / 'vector_category_db' / 'vector_index.json'

    @property
    def listings_db_file(self) -> Path:
        return self.data_dir / 'database' / 'listings.db'

    def validate(self):
        """Validate required configuration"""
        if not self.ebay_app_id:
            raise ConfigurationError(f"{_key('EBAY_APP_ID', self.suffix)} not set")
        if not self.ebay_client_secret:
            raise ConfigurationError(f"{_key('EBAY_CLIENT_SECRET', self.suffix)} not set")

    def validate_llm(self):
        if not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY not set")


def load_pricing_settings() -> PricingSettings:
    """Build pricing tables from {SOURCE}_TIER{n}_* variables over the defaults"""
    strategy = os.getenv('CHARM_PRICING_STRATEGY', 'always_99')
    if strategy not in CHARM_STRATEGIES:
        raise ConfigurationError(
            f"CHARM_PRICING_STRATEGY must be one of {', '.join(CHARM_STRATEGIES)}"
        )

    tables: Dict[str, PricingTable] = {}
    for source, (tiers, catch_all) in DEFAULT_PRICING_TIERS.items():
        prefix = source.upper()
        built = []
        for n, (max_price, multiplier) in enumerate(tiers, start=1):
            built.append(PricingTier(
                max_price=_env_float(f"{prefix}_TIER{n}_MAX_PRICE", max_price),
                multiplier=_env_float(f"{prefix}_TIER{n}_MULTIPLIER", multiplier),
            ))
        tables[source] = PricingTable(
            tiers=built,
            catch_all_multiplier=_env_float(f"{prefix}_TIER7_MULTIPLIER", catch_all),
        )

    return PricingSettings(tables=tables, charm_strategy=strategy)


# Per-suffix configuration instances
_config: Dict[str, Config] = {}


def get_config(suffix: str = "") -> Config:
    """Get the configuration instance for an account suffix"""
    config: Optional[Config] = _config.get(suffix)
    if config is None:
        config = Config(suffix)
        _config[suffix] = config
    return config
