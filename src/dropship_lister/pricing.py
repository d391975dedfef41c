"""
Tiered markup and charm pricing
"""
import math
import re
import logging
from typing import Optional

from .models import PricingSettings

logger = logging.getLogger(__name__)

_CURRENCY_CHARS = re.compile(r'[$£€,\s]')


def parse_price(value) -> float:
    """'$1,299.00' -> 1299.0; anything unparsable -> 0.0"""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _CURRENCY_CHARS.sub('', str(value))
    try:
        return float(cleaned) if cleaned else 0.0
    except ValueError:
        logger.debug(f"Could not parse price '{value}'")
        return 0.0


def get_tiered_multiplier(total: float, settings: PricingSettings, source: Optional[str] = None) -> float:
    """Multiplier of the first tier (ascending) whose max_price exceeds total"""
    table = settings.table_for(source)
    for tier in sorted(table.tiers, key=lambda t: t.max_price):
        if total < tier.max_price:
            return tier.multiplier
    return table.catch_all_multiplier


def apply_charm_pricing(raw: float, strategy: str) -> float:
    if raw <= 0:
        return 0.0
    # cent rounding first: 165 x 1.4 comes out as 230.99999999999997
    base = math.floor(round(raw, 2))
    if strategy == 'always_99':
        return round(base + 0.99, 2)
    if strategy == 'always_49':
        return round(base + 0.49, 2)
    if strategy == 'tiered':
        return round(base + (0.99 if raw < 20 else 0.95), 2)
    logger.warning(f"Unknown charm strategy '{strategy}', rounding to cents")
    return round(raw, 2)


def calculate_price(
    source_cost: float,
    delivery_fee: float,
    source: Optional[str],
    settings: PricingSettings,
    explicit_multiplier: Optional[float] = None,
) -> float:
    if source_cost <= 0:
        return 0.0

    total = source_cost + max(delivery_fee, 0.0)
    if explicit_multiplier is not None:
        multiplier = explicit_multiplier
    else:
        multiplier = get_tiered_multiplier(total, settings, source)

    price = apply_charm_pricing(total * multiplier, settings.charm_strategy)
    logger.debug(f"Priced {total:.2f} x {multiplier} -> {price:.2f} ({settings.charm_strategy})")
    return round(price, 2)


def multiplier_for(
    source_cost: float,
    delivery_fee: float,
    source: Optional[str],
    settings: PricingSettings,
    explicit_multiplier: Optional[float] = None,
) -> float:
    """The multiplier calculate_price would apply (0 when nothing is priced)"""
    if source_cost <= 0:
        return 0.0
    if explicit_multiplier is not None:
        return explicit_multiplier
    return get_tiered_multiplier(source_cost + max(delivery_fee, 0.0), settings, source)
