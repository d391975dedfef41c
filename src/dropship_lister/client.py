"""
eBay Sell API client (Inventory, Offer, Location, Fulfillment) with OAuth
token refresh woven through every call
"""
import time
import logging
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests

from .config import Config

logger = logging.getLogger(__name__)

INVENTORY_PATH = '/sell/inventory/v1'
FULFILLMENT_PATH = '/sell/fulfillment/v1'
OK_STATUSES = (200, 201, 204)


class APIError(Exception):
    """Non-2xx response from eBay"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ''):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UnauthorizedError(APIError):
    pass


class RateLimitError(APIError):
    pass


class ItemNotFoundError(APIError):
    pass


class eBayClient:
    def __init__(self, config: Config, token_manager):
        self.config = config
        self.token_manager = token_manager
        self.base_url = config.api_base_url
        self.timeout = 30

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {token}',
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'Content-Language': 'en-US',
            'Accept-Language': 'en-US',
            'X-EBAY-C-MARKETPLACE-ID': self.config.marketplace_id,
        }

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        allow_statuses: Iterable[int] = (),
        max_retries: int = 1,
    ) -> requests.Response:
        """Send one API call.

        Responses in OK_STATUSES or ``allow_statuses`` are returned as-is. A 401
        forces one token refresh and replays the call. 429, 5xx and network
        errors are retried only while ``max_retries`` allows it.
        """
        url = f"{self.base_url}{path}"
        allowed = set(OK_STATUSES) | set(allow_statuses)
        token = self.token_manager.get_valid_token()
        refreshed = False
        attempt = 0

        while True:
            attempt += 1
            try:
                response = requests.request(
                    method, url, headers=self._headers(token), params=params,
                    json=json, timeout=self.timeout,
                )
            except requests.exceptions.RequestException as e:
                if attempt < max_retries:
                    logger.warning(f"{method} {path} network error ({e}), retrying")
                    time.sleep(2 ** (attempt - 1))
                    continue
                raise APIError(f"Network error calling {method} {path}: {e}")

            status = response.status_code
            if status in allowed:
                return response

            if status == 401 and not refreshed:
                logger.info(f"{method} {path} returned 401, refreshing token")
                token = self.token_manager.get_valid_token(force_refresh=True)
                refreshed = True
                attempt -= 1
                continue
            if status == 401:
                raise UnauthorizedError("Authentication failed. Please re-authorize the account.",
                                        status, response.text)

            if status == 429:
                if attempt < max_retries:
                    wait = 2 ** attempt
                    logger.warning(f"Rate limited on {method} {path}, waiting {wait}s")
                    time.sleep(wait)
                    continue
                raise RateLimitError(f"Rate limit exceeded for {method} {path}", status, response.text)

            if status >= 500:
                if attempt < max_retries:
                    logger.warning(f"Server error {status} on {method} {path}, retrying")
                    time.sleep(2 ** (attempt - 1))
                    continue
                raise APIError(f"Server error {status} for {method} {path}", status, response.text)

            if status == 404:
                raise ItemNotFoundError(f"Not found: {method} {path}", status, response.text)

            raise APIError(f"{method} {path} failed: {status} - {response.text}", status, response.text)

    # Inventory items

    def put_inventory_item(self, sku: str, item: Dict[str, Any]) -> None:
        self.request('PUT', f"{INVENTORY_PATH}/inventory_item/{quote(sku, safe='')}", json=item)

    def list_inventory_items(self, limit: int = 100, offset: int = 0, max_retries: int = 3) -> Dict[str, Any]:
        response = self.request('GET', f"{INVENTORY_PATH}/inventory_item",
                                params={'limit': limit, 'offset': offset}, max_retries=max_retries)
        return response.json()

    # Merchant locations

    def get_location(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the location, or None when eBay reports it missing (404/204)"""
        response = self.request('GET', f"{INVENTORY_PATH}/location/{key}", allow_statuses=(404,))
        if response.status_code in (204, 404):
            return None
        return response.json()

    def create_location(self, key: str, location: Dict[str, Any]) -> None:
        self.request('POST', f"{INVENTORY_PATH}/location/{key}", json=location)

    # Offers

    def get_offers_for_sku(self, sku: str) -> List[Dict[str, Any]]:
        response = self.request('GET', f"{INVENTORY_PATH}/offer", params={'sku': sku},
                                allow_statuses=(404,))
        if response.status_code != 200:
            return []
        return response.json().get('offers') or []

    def create_offer(self, offer: Dict[str, Any]) -> str:
        response = self.request('POST', f"{INVENTORY_PATH}/offer", json=offer)
        offer_id = response.json().get('offerId')
        if not offer_id:
            raise APIError("Offer created but no offerId returned", response.status_code, response.text)
        return offer_id

    def update_offer(self, offer_id: str, offer: Dict[str, Any]) -> None:
        self.request('PUT', f"{INVENTORY_PATH}/offer/{offer_id}", json=offer)

    def publish_offer(self, offer_id: str) -> str:
        response = self.request('POST', f"{INVENTORY_PATH}/offer/{offer_id}/publish")
        listing_id = response.json().get('listingId')
        if not listing_id:
            raise APIError("Offer published but no listingId returned", response.status_code, response.text)
        return listing_id

    def list_offers(self, limit: int = 200, offset: int = 0, max_retries: int = 3) -> Dict[str, Any]:
        params = {
            'format': 'FIXED_PRICE',
            'marketplace_id': self.config.marketplace_id,
            'limit': limit,
            'offset': offset,
        }
        response = self.request('GET', f"{INVENTORY_PATH}/offer", params=params, max_retries=max_retries)
        return response.json()

    # Orders

    def list_orders(self, filter_expr: str, limit: int = 50, offset: int = 0,
                    max_retries: int = 3) -> Dict[str, Any]:
        params = {'filter': filter_expr, 'limit': min(limit, 200), 'offset': offset}
        response = self.request('GET', f"{FULFILLMENT_PATH}/order", params=params, max_retries=max_retries)
        return response.json()


class TaxonomyError(APIError):
    """Taxonomy API lookup failed"""
    pass


class TaxonomyClient:
    """Read-only Taxonomy API access with an application token"""

    def __init__(self, config: Config, app_token_provider):
        self.config = config
        self.app_token_provider = app_token_provider
        self.base_url = f"{config.api_base_url}/commerce/taxonomy/v1"
        self.timeout = 60

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        try:
            token = self.app_token_provider.get_token()
            headers = {
                'Authorization': f'Bearer {token}',
                'Accept': 'application/json',
                'Accept-Encoding': 'gzip',
            }
            response = requests.get(f"{self.base_url}{path}", headers=headers, params=params,
                                    timeout=self.timeout)
        except Exception as e:
            raise TaxonomyError(f"Taxonomy request {path} failed: {e}")

        if response.status_code not in (200, 204):
            raise TaxonomyError(f"Taxonomy request {path} failed: {response.status_code} - {response.text}",
                                response.status_code, response.text)
        return response

    def get_category_tree(self, tree_id: str = '0') -> Dict[str, Any]:
        response = self._get(f"/category_tree/{tree_id}")
        if response.status_code == 204 or not response.content:
            raise TaxonomyError(f"Category tree {tree_id} returned no content", response.status_code)
        return response.json()

    def get_item_aspects(self, category_id: str, tree_id: str = '0') -> Dict[str, Any]:
        response = self._get(f"/category_tree/{tree_id}/get_item_aspects_for_category",
                             params={'category_id': category_id})
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()
