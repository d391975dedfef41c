import os
import sys
import unittest
from unittest.mock import MagicMock, patch
from pathlib import Path

APIHELPERS_SRC = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(APIHELPERS_SRC))

import requests

from dropship_lister.config import Config
from dropship_lister.client import (
    eBayClient,
    APIError,
    RateLimitError,
    ItemNotFoundError,
    UnauthorizedError,
    TaxonomyClient,
    TaxonomyError,
)


def _response(status_code, payload=None, text=''):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.text = text
    response.content = b'{}' if payload is not None else b''
    return response


@patch('dropship_lister.config.load_dotenv')
class TesteBayClient(unittest.TestCase):
    def setUp(self):
        self._original_env = os.environ.copy()
        os.environ["EBAY_APP_ID"] = "test-app-id"
        os.environ["EBAY_CLIENT_SECRET"] = "test-secret"
        os.environ.pop("EBAY_ENVIRONMENT", None)
        self.token_manager = MagicMock()
        self.token_manager.get_valid_token.return_value = "test-token"

    def tearDown(self):
        os.environ.clear()
        os.environ.update(self._original_env)

    def _client(self):
        return eBayClient(Config(), self.token_manager)

    def test_client_initialization(self, mock_config_load):
        client = self._client()

        self.assertEqual(client.base_url, "https://api.ebay.com")
        self.assertIs(client.token_manager, self.token_manager)

    @patch('dropship_lister.client.requests.request')
    def test_request_sends_bearer_and_language_headers(self, mock_request, mock_config_load):
        mock_request.return_value = _response(204)

        self._client().put_inventory_item("B0TEST", {'sku': 'B0TEST'})

        method, url = mock_request.call_args.args
        headers = mock_request.call_args.kwargs['headers']
        self.assertEqual(method, 'PUT')
        self.assertEqual(url, "https://api.ebay.com/sell/inventory/v1/inventory_item/B0TEST")
        self.assertEqual(headers['Authorization'], 'Bearer test-token')
        self.assertEqual(headers['Content-Language'], 'en-US')

    @patch('dropship_lister.client.requests.request')
    def test_404_raises_item_not_found(self, mock_request, mock_config_load):
        mock_request.return_value = _response(404)

        with self.assertRaises(ItemNotFoundError):
            self._client().update_offer("123", {})

    @patch('dropship_lister.client.requests.request')
    def test_401_refreshes_once_and_replays(self, mock_request, mock_config_load):
        self.token_manager.get_valid_token.side_effect = ["old-token", "new-token"]
        mock_request.side_effect = [_response(401), _response(200, {'listingId': '999'})]

        listing_id = self._client().publish_offer("555")

        self.assertEqual(listing_id, '999')
        self.assertEqual(mock_request.call_count, 2)
        self.token_manager.get_valid_token.assert_called_with(force_refresh=True)
        headers = mock_request.call_args.kwargs['headers']
        self.assertEqual(headers['Authorization'], 'Bearer new-token')

    @patch('dropship_lister.client.requests.request')
    def test_401_after_refresh_raises_unauthorized(self, mock_request, mock_config_load):
        mock_request.return_value = _response(401)

        with self.assertRaises(UnauthorizedError):
            self._client().publish_offer("555")
        self.assertEqual(mock_request.call_count, 2)

    @patch('dropship_lister.client.requests.request')
    @patch('dropship_lister.client.time.sleep')
    def test_429_rate_limit_with_retry(self, mock_sleep, mock_request, mock_config_load):
        mock_request.side_effect = [_response(429), _response(200, {'inventoryItems': []})]

        result = self._client().list_inventory_items()

        self.assertEqual(result, {'inventoryItems': []})
        self.assertEqual(mock_request.call_count, 2)
        mock_sleep.assert_called_once_with(2)  # First retry wait

    @patch('dropship_lister.client.requests.request')
    @patch('dropship_lister.client.time.sleep')
    def test_429_rate_limit_exhausted(self, mock_sleep, mock_request, mock_config_load):
        mock_request.return_value = _response(429)

        with self.assertRaises(RateLimitError):
            self._client().list_inventory_items(max_retries=3)
        self.assertEqual(mock_request.call_count, 3)

    @patch('dropship_lister.client.requests.request')
    @patch('dropship_lister.client.time.sleep')
    def test_500_server_error_with_retry(self, mock_sleep, mock_request, mock_config_load):
        mock_request.side_effect = [_response(500), _response(200, {'offers': []})]

        self._client().list_offers()

        mock_sleep.assert_called_once_with(1)

    @patch('dropship_lister.client.requests.request')
    @patch('dropship_lister.client.time.sleep')
    def test_500_server_error_exhausted(self, mock_sleep, mock_request, mock_config_load):
        mock_request.return_value = _response(503)

        with self.assertRaises(APIError) as ctx:
            self._client().list_offers(max_retries=2)
        self.assertIn("Server error", str(ctx.exception))
        self.assertEqual(ctx.exception.status_code, 503)

    @patch('dropship_lister.client.requests.request')
    @patch('dropship_lister.client.time.sleep')
    def test_publish_path_does_not_retry(self, mock_sleep, mock_request, mock_config_load):
        mock_request.return_value = _response(500)

        with self.assertRaises(APIError):
            self._client().create_offer({'sku': 'B0TEST'})
        self.assertEqual(mock_request.call_count, 1)
        mock_sleep.assert_not_called()

    @patch('dropship_lister.client.requests.request')
    @patch('dropship_lister.client.time.sleep')
    def test_network_error_with_retry(self, mock_sleep, mock_request, mock_config_load):
        mock_request.side_effect = [
            requests.exceptions.ConnectionError("Network error"),
            _response(200, {'orders': [], 'total': 0}),
        ]

        self._client().list_orders("orderfulfillmentstatus:{NOT_STARTED}")

        mock_sleep.assert_called_once_with(1)

    @patch('dropship_lister.client.requests.request')
    def test_400_error_message_includes_status(self, mock_request, mock_config_load):
        mock_request.return_value = _response(400, text='{"errors": []}')

        with self.assertRaises(APIError) as ctx:
            self._client().create_offer({'sku': 'B0TEST'})
        self.assertIn("400", str(ctx.exception))

    @patch('dropship_lister.client.requests.request')
    def test_get_location_missing_returns_none(self, mock_request, mock_config_load):
        mock_request.return_value = _response(404)
        self.assertIsNone(self._client().get_location("us_warehouse"))

        mock_request.return_value = _response(204)
        self.assertIsNone(self._client().get_location("us_warehouse"))

    @patch('dropship_lister.client.requests.request')
    def test_get_offers_for_sku(self, mock_request, mock_config_load):
        mock_request.return_value = _response(200, {'offers': [{'offerId': '42'}]})
        self.assertEqual(self._client().get_offers_for_sku("B0TEST"), [{'offerId': '42'}])
        self.assertEqual(mock_request.call_args.kwargs['params'], {'sku': 'B0TEST'})

        mock_request.return_value = _response(404)
        self.assertEqual(self._client().get_offers_for_sku("B0TEST"), [])

    @patch('dropship_lister.client.requests.request')
    def test_create_offer_without_id_raises(self, mock_request, mock_config_load):
        mock_request.return_value = _response(201, {})

        with self.assertRaises(APIError):
            self._client().create_offer({'sku': 'B0TEST'})

    @patch('dropship_lister.client.requests.request')
    def test_list_orders_caps_limit(self, mock_request, mock_config_load):
        mock_request.return_value = _response(200, {'orders': []})

        self._client().list_orders("filter", limit=500)

        self.assertEqual(mock_request.call_args.kwargs['params']['limit'], 200)


@patch('dropship_lister.config.load_dotenv')
class TestTaxonomyClient(unittest.TestCase):
    def setUp(self):
        self._original_env = os.environ.copy()
        os.environ.pop("EBAY_ENVIRONMENT", None)
        self.app_tokens = MagicMock()
        self.app_tokens.get_token.return_value = "app-token"

    def tearDown(self):
        os.environ.clear()
        os.environ.update(self._original_env)

    @patch('dropship_lister.client.requests.get')
    def test_get_item_aspects(self, mock_get, mock_config_load):
        mock_get.return_value = _response(200, {'aspects': [{'localizedAspectName': 'Color'}]})

        client = TaxonomyClient(Config(), self.app_tokens)
        data = client.get_item_aspects("12345")

        self.assertEqual(data['aspects'][0]['localizedAspectName'], 'Color')
        url = mock_get.call_args.args[0]
        self.assertTrue(url.endswith("/commerce/taxonomy/v1/category_tree/0/get_item_aspects_for_category"))
        self.assertEqual(mock_get.call_args.kwargs['params'], {'category_id': '12345'})

    @patch('dropship_lister.client.requests.get')
    def test_no_content_returns_empty(self, mock_get, mock_config_load):
        mock_get.return_value = _response(204)

        client = TaxonomyClient(Config(), self.app_tokens)
        self.assertEqual(client.get_item_aspects("12345"), {})

    @patch('dropship_lister.client.requests.get')
    def test_error_raises_taxonomy_error(self, mock_get, mock_config_load):
        mock_get.return_value = _response(500, text='boom')

        client = TaxonomyClient(Config(), self.app_tokens)
        with self.assertRaises(TaxonomyError):
            client.get_category_tree()


if __name__ == '__main__':
    unittest.main()
