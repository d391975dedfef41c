"""
Maps scraped product records onto listing data: image filtering, weight
parsing, brand extraction, HTML descriptions and protected aspects
"""
import re
import html
import logging
from typing import Dict, List, Optional

from .models import AspectValue, PackageWeight, PreparedProduct, PricingSettings, ProductRecord
from .pricing import calculate_price, multiplier_for, parse_price
from .requirements import smart_truncate
from .sanitizer import sanitize_product

logger = logging.getLogger(__name__)

MAX_IMAGES = 12
DEFAULT_BRAND = 'Generic'

# Amazon UI sprites, video overlays and tracking pixels rather than product photos
IMAGE_BLOCKLIST = [
    '_AC_SL', 'AC_SL',
    '/images/G/', '/G/01/',
    'PKplay-button', 'play-icon', 'play_button',
    '360_icon', '360-icon', 'imageBlock',
    'transparent-pixel', 'transparent_pixel',
]

# Words eBay rejects as a brand
INVALID_BRANDS = {
    'custom', 'personalized', 'handmade', 'vintage', 'unique', 'new', 'brand',
    'the', 'a', 'an', 'with', 'for', 'and',
}

BRAND_SPEC_KEYS = ('brand', 'brand name', 'manufacturer')
PROTECTED_ASPECTS = ('Brand', 'MPN', 'Condition')

_WEIGHT = re.compile(r'([\d.]+)\s*(pounds?|lbs?|ounces?|oz)', re.IGNORECASE)


def filter_images(images: List[str]) -> List[str]:
    kept = [url for url in images or [] if url and not any(marker in url for marker in IMAGE_BLOCKLIST)]
    if len(kept) < len(images or []):
        logger.debug(f"Filtered {len(images) - len(kept)} non-product image(s)")
    return kept[:MAX_IMAGES]


def parse_weight(text: Optional[str]) -> Optional[PackageWeight]:
    """'12 ounces' -> 0.75 POUND; None when no weight can be read"""
    if not text:
        return None
    match = _WEIGHT.search(text)
    if not match:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    if match.group(2).lower().startswith(('ounce', 'oz')):
        value = value / 16
    return PackageWeight(value=f"{value:.2f}")


def extract_brand(title: str, specifications: Optional[Dict[str, str]] = None) -> str:
    for key, value in (specifications or {}).items():
        if key.lower() in BRAND_SPEC_KEYS and value and value.strip():
            brand = value.strip()
            if brand.lower() not in INVALID_BRANDS:
                return brand

    words = (title or '').split()
    if words:
        first = words[0]
        if len(first) > 1 and (first.isupper() or first[0].isupper()):
            if first.lower() not in INVALID_BRANDS:
                return first

    return DEFAULT_BRAND


def build_html_description(title: str, description: str, bullet_points: List[str],
                           images: List[str], specifications: Dict[str, str]) -> str:
    esc = html.escape
    parts = [
        '<div style="font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto;">',
        f'<h2 style="color: #333;">{esc(title)}</h2>',
    ]

    if images:
        parts.append(
            '<div style="text-align: center; margin: 20px 0;">'
            f'<img src="{esc(images[0])}" alt="Product Image" style="max-width: 100%; height: auto;" />'
            '</div>'
        )

    bullets = [b.strip() for b in bullet_points[:10] if b and b.strip()]
    if bullets:
        parts.append('<h3 style="color: #555;">Key Features:</h3>')
        parts.append('<ul style="line-height: 1.8;">')
        parts.extend(f'<li>{esc(b)}</li>' for b in bullets)
        parts.append('</ul>')

    if description and description.strip():
        parts.append('<h3 style="color: #555;">Product Description:</h3>')
        parts.append(f'<p style="line-height: 1.6;">{esc(description.strip())}</p>')

    specs = [(k, v) for k, v in specifications.items() if v and v.strip()]
    if specs:
        parts.append('<h3 style="color: #555;">Specifications:</h3>')
        parts.append('<table style="width: 100%; border-collapse: collapse; margin-bottom: 20px;">')
        for key, value in specs:
            parts.append(
                '<tr style="border-bottom: 1px solid #ddd;">'
                f'<td style="padding: 10px; font-weight: bold; width: 40%;">{esc(key)}:</td>'
                f'<td style="padding: 10px;">{esc(value)}</td>'
                '</tr>'
            )
        parts.append('</table>')

    parts.append(
        '<div style="background: #f0f0f0; padding: 15px; margin-top: 20px; border-radius: 5px;">'
        '<p style="margin: 0; font-size: 14px;"><strong>Shipping:</strong> '
        'Fast and reliable shipping. Item will be carefully packaged and shipped promptly.</p>'
        '</div>'
    )
    parts.append('</div>')
    return ''.join(parts)


def prepare_product(record: ProductRecord, settings: PricingSettings) -> PreparedProduct:
    """Sanitize, price and derive everything the listing needs from a raw record"""
    sanitized = sanitize_product(record)

    source_price = parse_price(record.price)
    delivery_fee = parse_price(record.delivery_fee)
    sale_price = calculate_price(source_price, delivery_fee, record.source, settings,
                                 explicit_multiplier=record.price_multiplier)
    multiplier = multiplier_for(source_price, delivery_fee, record.source, settings,
                                explicit_multiplier=record.price_multiplier)

    description = sanitized.description
    if not description:
        description = '\n\n'.join(sanitized.bullet_points) if sanitized.bullet_points else sanitized.title

    weight = parse_weight(sanitized.specifications.get('Item Weight')) or PackageWeight(value='1.0')

    return PreparedProduct(
        sku=record.sku,
        title=sanitized.title,
        description=description,
        bullet_points=sanitized.bullet_points,
        specifications=sanitized.specifications,
        images=filter_images(record.images),
        brand=extract_brand(sanitized.title, sanitized.specifications),
        source_price=source_price,
        delivery_fee=delivery_fee,
        sale_price=sale_price,
        multiplier_used=multiplier,
        weight=weight,
        violations=sanitized.violations,
    )


def build_aspects(brand: str, sku: str, filled: Dict[str, AspectValue]) -> Dict[str, List[str]]:
    """Merge LLM-filled aspects under the protected Brand/MPN/Condition values.

    Every value is held to the aspect length limit, whatever its origin.
    """
    aspects: Dict[str, List[str]] = {}
    for name, value in (filled or {}).items():
        if name in PROTECTED_ASPECTS:
            continue
        values = value if isinstance(value, list) else [value]
        values = [smart_truncate(str(v).strip()) for v in values if v is not None and str(v).strip()]
        if values:
            aspects[name] = values

    aspects['Brand'] = [smart_truncate((brand or '').strip() or DEFAULT_BRAND)]
    aspects['MPN'] = [sku]
    aspects['Condition'] = ['New']
    return aspects
