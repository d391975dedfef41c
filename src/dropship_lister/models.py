"""
Data models for products, categories, pricing and listing results
"""
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

AspectValue = Union[str, List[str]]

STATUS_SUCCESS = 'success'
STATUS_FAILED = 'failed'


@dataclass(frozen=True)
class ProductRecord:
    """Scraped source-marketplace product, immutable once handed to the pipeline"""
    sku: str  # Source identifier (ASIN etc.), reused as the eBay SKU
    title: str
    description: str = ''
    bullet_points: List[str] = field(default_factory=list)
    specifications: Dict[str, str] = field(default_factory=dict)
    images: List[str] = field(default_factory=list)
    price: str = ''  # e.g. "$29.99"
    delivery_fee: str = ''
    source: str = 'amazon'  # amazon, yami, costco
    price_multiplier: Optional[float] = None  # Bypasses the tier table when set
    original_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProductRecord':
        sku = data.get('asin') or data.get('sku') or data.get('id')
        if not sku:
            raise ValueError("Product record has no asin/sku")
        multiplier = data.get('price_multiplier', data.get('priceMultiplier'))
        specs = data.get('specifications') or {}
        return cls(
            sku=str(sku),
            title=data.get('title') or '',
            description=data.get('description') or '',
            bullet_points=[str(b) for b in (data.get('bulletPoints') or data.get('bullet_points') or [])],
            specifications={str(k): str(v) for k, v in specs.items() if v is not None},
            images=[str(i) for i in (data.get('images') or [])],
            price=str(data.get('price') or ''),
            delivery_fee=str(data.get('deliveryFee') or data.get('delivery_fee') or ''),
            source=(data.get('source') or 'amazon').lower(),
            price_multiplier=float(multiplier) if multiplier is not None else None,
            original_url=data.get('originalAmazonUrl') or data.get('original_url'),
        )


@dataclass
class Category:
    """eBay taxonomy node"""
    id: str
    name: str
    parent_id: Optional[str]
    level: int
    leaf: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'parentId': self.parent_id,
            'level': self.level,
            'leaf': self.leaf,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Category':
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            parent_id=data.get('parentId'),
            level=int(data.get('level', 0)),
            leaf=bool(data.get('leaf', False)),
        )


@dataclass
class CategoryMatch:
    """Vector index hit"""
    category_id: str
    name: str
    path: str
    level: int
    score: float


@dataclass
class AspectInfo:
    name: str
    required: bool = False
    cardinality: str = 'SINGLE'  # SINGLE or MULTI
    mode: str = 'SELECTION_ONLY'  # FREE_TEXT or SELECTION_ONLY
    data_type: str = 'STRING'
    values: List[str] = field(default_factory=list)
    total_values: int = 0  # Before truncation to 50


@dataclass
class CategoryRequirements:
    required: List[AspectInfo] = field(default_factory=list)
    recommended: List[AspectInfo] = field(default_factory=list)
    optional: List[AspectInfo] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.required or self.recommended or self.optional)


@dataclass
class PricingTier:
    max_price: float
    multiplier: float


@dataclass
class PricingTable:
    """Six price bands plus the multiplier for anything above the last band"""
    tiers: List[PricingTier]
    catch_all_multiplier: float


@dataclass
class PricingSettings:
    tables: Dict[str, PricingTable]
    charm_strategy: str = 'always_99'  # always_99, always_49 or tiered
    default_source: str = 'amazon'

    def table_for(self, source: Optional[str]) -> PricingTable:
        if source and source.lower() in self.tables:
            return self.tables[source.lower()]
        return self.tables[self.default_source]


@dataclass
class CategoryResolution:
    optimized_title: str
    brand: str
    category_id: str
    category_name: str
    confidence: float
    reasoning: str = ''
    needs_review: bool = False


@dataclass
class PackageWeight:
    value: str
    unit: str = 'POUND'

    def to_dict(self) -> Dict[str, str]:
        return {'value': self.value, 'unit': self.unit}


@dataclass
class PreparedProduct:
    """Sanitized and priced product, ready for category resolution"""
    sku: str
    title: str
    description: str
    bullet_points: List[str]
    specifications: Dict[str, str]
    images: List[str]
    brand: str
    source_price: float
    delivery_fee: float
    sale_price: float
    multiplier_used: float
    weight: PackageWeight
    violations: List[str] = field(default_factory=list)


@dataclass
class ListingDraft:
    """Everything the publisher needs for one SKU"""
    sku: str
    title: str
    description: str
    listing_description: str  # HTML
    images: List[str]
    aspects: Dict[str, List[str]]
    weight: PackageWeight
    price: float
    category_id: str
    category_name: str = ''


@dataclass
class ListingResult:
    sku: str
    status: str
    stage: Optional[str] = None
    error: Optional[str] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    offer_id: Optional[str] = None
    listing_id: Optional[str] = None
    price: Optional[float] = None
    needs_review: bool = False
    processing_time: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    @classmethod
    def failed(cls, sku: str, stage: str, error: str, **kwargs) -> 'ListingResult':
        return cls(sku=sku, status=STATUS_FAILED, stage=stage, error=error, **kwargs)


@dataclass
class AccessToken:
    access_token: str
    expires_at: float = 0.0  # Epoch seconds, 0 when unknown
    refresh_token: Optional[str] = None

    def is_expired(self, margin: int = 300) -> bool:
        if not self.expires_at:
            return False
        return time.time() >= self.expires_at - margin


@dataclass
class InventoryListing:
    """Inventory item merged with its offer, if any"""
    sku: str
    title: str
    quantity: int
    condition: str
    image_url: Optional[str]
    offer_id: Optional[str] = None
    listing_id: Optional[str] = None
    status: str = 'INACTIVE'
    price: Optional[Dict[str, str]] = None
    category_id: Optional[str] = None


@dataclass
class ShippingAddress:
    name: str = ''
    address_line1: str = ''
    address_line2: str = ''
    city: str = ''
    state_or_province: str = ''
    postal_code: str = ''
    country_code: str = 'US'
    phone_number: str = ''
    email: str = ''


@dataclass
class OrderLineItem:
    line_item_id: str
    sku: str  # Same as the source product id
    title: str
    quantity: int
    price: float
    currency: str = 'USD'


@dataclass
class Order:
    order_id: str
    order_date: str
    status: str
    total_amount: str
    currency: str
    shipping_address: ShippingAddress
    items: List[OrderLineItem] = field(default_factory=list)
