"""
Paginated retrieval of existing listings (Inventory + Offer APIs) and
unshipped orders (Fulfillment API)
"""
import time
import logging
from typing import Any, Dict, List

from .client import APIError, UnauthorizedError, eBayClient
from .models import InventoryListing, Order, OrderLineItem, ShippingAddress

logger = logging.getLogger(__name__)

INVENTORY_PAGE_SIZE = 100
OFFER_PAGE_SIZE = 200
ORDER_PAGE_SIZE = 200
UNSHIPPED_FILTER = 'orderfulfillmentstatus:{NOT_STARTED|IN_PROGRESS}'


def _has_more(data: Dict[str, Any], fetched: int, page_items: List[Any]) -> bool:
    total = data.get('total') or 0
    return bool(data.get('next')) and fetched < total and len(page_items) > 0


class ListingRetriever:
    def __init__(self, client: eBayClient, page_delay: float = 0.15):
        self.client = client
        self.page_delay = page_delay

    def fetch_inventory_items(self) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        offset = 0
        while True:
            data = self.client.list_inventory_items(limit=INVENTORY_PAGE_SIZE, offset=offset)
            page = data.get('inventoryItems') or []
            items.extend(page)
            logger.info(f"Fetched {len(items)}/{data.get('total') or 0} inventory items")
            if not _has_more(data, len(items), page):
                break
            offset += len(page)
            time.sleep(self.page_delay)
        return items

    def fetch_offers(self) -> List[Dict[str, Any]]:
        """All fixed-price offers; [] when the Offer API is unavailable for reasons other than auth"""
        offers: List[Dict[str, Any]] = []
        offset = 0
        try:
            while True:
                data = self.client.list_offers(limit=OFFER_PAGE_SIZE, offset=offset)
                page = data.get('offers') or []
                offers.extend(page)
                logger.info(f"Fetched {len(offers)}/{data.get('total') or 0} offers")
                if not _has_more(data, len(offers), page):
                    break
                offset += len(page)
                time.sleep(self.page_delay)
        except UnauthorizedError:
            raise
        except APIError as e:
            logger.warning(f"Offers API failed ({e}), continuing without offers")
            return []
        return offers

    def fetch_all(self) -> List[InventoryListing]:
        items = self.fetch_inventory_items()
        time.sleep(self.page_delay)
        offers = {offer.get('sku'): offer for offer in self.fetch_offers() if offer.get('sku')}

        listings = []
        for item in items:
            sku = item.get('sku')
            if not sku:
                continue
            listings.append(self._merge(item, offers.get(sku)))
        logger.info(f"Retrieved {len(listings)} listings ({len(offers)} with offers)")
        return listings

    def _merge(self, item: Dict[str, Any], offer) -> InventoryListing:
        product = item.get('product') or {}
        images = product.get('imageUrls') or []
        quantity = ((item.get('availability') or {}).get('shipToLocationAvailability') or {}).get('quantity') or 0

        status = 'INACTIVE'
        if offer:
            if offer.get('status') == 'PUBLISHED':
                status = 'ACTIVE' if quantity > 0 else 'OUT_OF_STOCK'

        return InventoryListing(
            sku=item['sku'],
            title=product.get('title', ''),
            quantity=int(quantity),
            condition=item.get('condition', ''),
            image_url=images[0] if images else None,
            offer_id=offer.get('offerId') if offer else None,
            listing_id=((offer.get('listing') or {}).get('listingId') or offer.get('listingId')) if offer else None,
            status=status,
            price=(offer.get('pricingSummary') or {}).get('price') if offer else None,
            category_id=offer.get('categoryId') if offer else None,
        )


def _shipping_address(order: Dict[str, Any]) -> ShippingAddress:
    buyer = order.get('buyer') or {}
    email = buyer.get('email', '')
    instructions = order.get('fulfillmentStartInstructions') or []
    step = (instructions[0].get('shippingStep') or {}) if instructions else {}

    if step.get('shipTo'):
        contact = step['shipTo']
        email = contact.get('email') or email
    else:
        contact = buyer.get('buyerRegistrationAddress') or {}

    address = contact.get('contactAddress') or {}
    return ShippingAddress(
        name=contact.get('fullName', ''),
        address_line1=address.get('addressLine1', ''),
        address_line2=address.get('addressLine2', ''),
        city=address.get('city', ''),
        state_or_province=address.get('stateOrProvince', ''),
        postal_code=address.get('postalCode', ''),
        country_code=address.get('countryCode', 'US'),
        phone_number=(contact.get('primaryPhone') or {}).get('phoneNumber', ''),
        email=email,
    )


def map_order(order: Dict[str, Any]) -> Order:
    items = []
    for line in order.get('lineItems') or []:
        cost = line.get('lineItemCost') or {}
        items.append(OrderLineItem(
            line_item_id=line.get('lineItemId', ''),
            sku=line.get('sku', ''),
            title=line.get('title', ''),
            quantity=int(line.get('quantity') or 1),
            price=float(cost.get('value') or 0),
            currency=cost.get('currency', 'USD'),
        ))

    total = (order.get('pricingSummary') or {}).get('total') or {}
    return Order(
        order_id=order.get('orderId', ''),
        order_date=order.get('creationDate', ''),
        status=order.get('orderFulfillmentStatus', ''),
        total_amount=total.get('value', '0.00'),
        currency=total.get('currency', 'USD'),
        shipping_address=_shipping_address(order),
        items=items,
    )


class OrderRetriever:
    def __init__(self, client: eBayClient, page_delay: float = 0.2):
        self.client = client
        self.page_delay = page_delay

    def fetch_unshipped_orders(self, limit: int = 50) -> List[Order]:
        orders: List[Order] = []
        offset = 0
        page_size = min(limit, ORDER_PAGE_SIZE)
        while True:
            data = self.client.list_orders(UNSHIPPED_FILTER, limit=page_size, offset=offset)
            page = data.get('orders') or []
            orders.extend(map_order(o) for o in page)
            total = data.get('total') or 0
            offset += len(page)
            logger.info(f"Fetched {offset}/{total} orders")
            if offset >= total or not page:
                break
            time.sleep(self.page_delay)
        return orders
