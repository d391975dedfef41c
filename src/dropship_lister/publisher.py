"""
Publishes a listing through the Inventory API:
inventory item -> merchant location -> offer -> publish
"""
import time
import logging
from typing import Any, Dict, Optional

from .auth import TokenError
from .client import APIError, eBayClient
from .config import Config
from .models import STATUS_SUCCESS, ListingDraft, ListingResult
from .product_mapper import MAX_IMAGES

logger = logging.getLogger(__name__)

STAGE_INVENTORY = 'inventory'
STAGE_LOCATION = 'location'
STAGE_OFFER = 'offer'
STAGE_PUBLISH = 'publish'


class PublishError(Exception):
    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage


class ListingPublisher:
    def __init__(self, client: eBayClient, config: Config):
        self.client = client
        self.config = config
        self._location_ready = False

    def _inventory_item(self, draft: ListingDraft) -> Dict[str, Any]:
        quantity = self.config.default_inventory_quantity
        return {
            'sku': draft.sku,
            'locale': 'en_US',
            'product': {
                'title': draft.title,
                'description': draft.description,
                'imageUrls': draft.images[:MAX_IMAGES],
                'aspects': draft.aspects,
            },
            'condition': 'NEW',
            'packageWeightAndSize': {'weight': draft.weight.to_dict()},
            'availability': {
                'shipToLocationAvailability': {
                    'quantity': quantity,
                    'availabilityDistributions': [{
                        'merchantLocationKey': self.config.merchant_location_key,
                        'quantity': quantity,
                    }],
                },
            },
        }

    def _offer(self, draft: ListingDraft) -> Dict[str, Any]:
        return {
            'sku': draft.sku,
            'marketplaceId': self.config.marketplace_id,
            'format': 'FIXED_PRICE',
            'availableQuantity': self.config.default_inventory_quantity,
            'categoryId': draft.category_id,
            'listingDescription': draft.listing_description,
            'listingPolicies': {
                'paymentPolicyId': self.config.payment_policy_id,
                'returnPolicyId': self.config.return_policy_id,
                'fulfillmentPolicyId': self.config.fulfillment_policy_id,
            },
            'pricingSummary': {
                'price': {'value': f"{draft.price:.2f}", 'currency': 'USD'},
            },
            'merchantLocationKey': self.config.merchant_location_key,
        }

    def _location(self) -> Dict[str, Any]:
        return {
            'location': {
                'address': {
                    'postalCode': self.config.location_postal_code,
                    'country': 'US',
                },
            },
            'locationTypes': ['WAREHOUSE'],
            'name': 'US Warehouse',
            'merchantLocationStatus': 'ENABLED',
        }

    def ensure_location(self) -> None:
        """Create the merchant location once if eBay does not have it"""
        if self._location_ready:
            return
        key = self.config.merchant_location_key
        if self.client.get_location(key) is None:
            logger.info(f"Creating merchant location '{key}'...")
            self.client.create_location(key, self._location())
        else:
            logger.debug(f"Location '{key}' already exists")
        self._location_ready = True

    def upsert_offer(self, draft: ListingDraft) -> str:
        offer = self._offer(draft)
        existing = self.client.get_offers_for_sku(draft.sku)
        if existing and existing[0].get('offerId'):
            offer_id = existing[0]['offerId']
            logger.info(f"Updating existing offer {offer_id} for {draft.sku}")
            self.client.update_offer(offer_id, offer)
            return offer_id
        offer_id = self.client.create_offer(offer)
        logger.info(f"Created offer {offer_id} for {draft.sku}")
        return offer_id

    def _run_stage(self, stage: str, func, *args):
        try:
            return func(*args)
        except (APIError, TokenError) as e:
            raise PublishError(stage, str(e))

    def publish(self, draft: ListingDraft) -> ListingResult:
        start = time.time()
        offer_id: Optional[str] = None
        try:
            # No network call happens without a usable token
            self._run_stage(STAGE_INVENTORY, self.client.token_manager.get_valid_token)
            self._run_stage(STAGE_INVENTORY, self.client.put_inventory_item, draft.sku,
                            self._inventory_item(draft))
            self._run_stage(STAGE_LOCATION, self.ensure_location)
            offer_id = self._run_stage(STAGE_OFFER, self.upsert_offer, draft)
            listing_id = self._run_stage(STAGE_PUBLISH, self.client.publish_offer, offer_id)
        except PublishError as e:
            logger.error(f"{draft.sku}: {e.stage} failed: {e}")
            return ListingResult.failed(
                draft.sku, e.stage, str(e),
                category_id=draft.category_id,
                category_name=draft.category_name,
                offer_id=offer_id,
                price=draft.price,
                processing_time=time.time() - start,
            )

        logger.info(f"{draft.sku}: published as listing {listing_id}")
        return ListingResult(
            sku=draft.sku,
            status=STATUS_SUCCESS,
            category_id=draft.category_id,
            category_name=draft.category_name,
            offer_id=offer_id,
            listing_id=listing_id,
            price=draft.price,
            processing_time=time.time() - start,
        )
