import sys
import unittest
from unittest.mock import MagicMock, patch
from pathlib import Path

APIHELPERS_SRC = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(APIHELPERS_SRC))

from dropship_lister.client import APIError, UnauthorizedError
from dropship_lister.retrieval import UNSHIPPED_FILTER, ListingRetriever, OrderRetriever, map_order


def inventory_item(sku, quantity=3):
    return {
        'sku': sku,
        'condition': 'NEW',
        'product': {'title': f"Item {sku}", 'imageUrls': [f"https://img.example/{sku}.jpg"]},
        'availability': {'shipToLocationAvailability': {'quantity': quantity}},
    }


def order_payload():
    return {
        'orderId': '12-34567-89012',
        'creationDate': '2026-10-01T12:00:00.000Z',
        'orderFulfillmentStatus': 'NOT_STARTED',
        'pricingSummary': {'total': {'value': '35.98', 'currency': 'USD'}},
        'buyer': {'username': 'buyer1', 'email': 'buyer@mail.example'},
        'fulfillmentStartInstructions': [{
            'shippingStep': {'shipTo': {
                'fullName': 'Jane Doe',
                'contactAddress': {
                    'addressLine1': '1 Main St', 'city': 'Springfield',
                    'stateOrProvince': 'IL', 'postalCode': '62701', 'countryCode': 'US',
                },
                'primaryPhone': {'phoneNumber': '2175550100'},
            }},
        }],
        'lineItems': [{
            'lineItemId': '1001', 'sku': 'B0TEST', 'title': 'Coffee Mug',
            'quantity': 2, 'lineItemCost': {'value': '31.98', 'currency': 'USD'},
        }],
    }


@patch('dropship_lister.retrieval.time.sleep')
class ListingRetrieverTests(unittest.TestCase):
    def test_inventory_pagination(self, mock_sleep):
        client = MagicMock()
        client.list_inventory_items.side_effect = [
            {'inventoryItems': [inventory_item('A'), inventory_item('B')], 'total': 3, 'next': 'page2'},
            {'inventoryItems': [inventory_item('C')], 'total': 3},
        ]

        items = ListingRetriever(client, page_delay=0.15).fetch_inventory_items()

        self.assertEqual([i['sku'] for i in items], ['A', 'B', 'C'])
        self.assertEqual(client.list_inventory_items.call_args_list[1].kwargs['offset'], 2)
        mock_sleep.assert_called_once_with(0.15)

    def test_empty_page_stops(self, mock_sleep):
        client = MagicMock()
        client.list_inventory_items.return_value = {'inventoryItems': [], 'total': 10, 'next': 'more'}

        self.assertEqual(ListingRetriever(client).fetch_inventory_items(), [])
        self.assertEqual(client.list_inventory_items.call_count, 1)

    def test_fetch_all_merges_offers(self, mock_sleep):
        client = MagicMock()
        client.list_inventory_items.return_value = {
            'inventoryItems': [inventory_item('A'), inventory_item('B', quantity=0),
                               inventory_item('C'), {'product': {}}],
            'total': 4,
        }
        client.list_offers.return_value = {'offers': [
            {'sku': 'A', 'offerId': 'O1', 'status': 'PUBLISHED', 'listing': {'listingId': 'L1'},
             'pricingSummary': {'price': {'value': '31.99', 'currency': 'USD'}}, 'categoryId': '100'},
            {'sku': 'B', 'offerId': 'O2', 'status': 'PUBLISHED'},
        ], 'total': 2}

        listings = {l.sku: l for l in ListingRetriever(client).fetch_all()}

        self.assertEqual(set(listings), {'A', 'B', 'C'})
        self.assertEqual(listings['A'].status, 'ACTIVE')
        self.assertEqual(listings['A'].listing_id, 'L1')
        self.assertEqual(listings['A'].price, {'value': '31.99', 'currency': 'USD'})
        self.assertEqual(listings['A'].image_url, 'https://img.example/A.jpg')
        self.assertEqual(listings['B'].status, 'OUT_OF_STOCK')
        self.assertEqual(listings['C'].status, 'INACTIVE')
        self.assertIsNone(listings['C'].offer_id)

    def test_offers_failure_continues(self, mock_sleep):
        client = MagicMock()
        client.list_inventory_items.return_value = {'inventoryItems': [inventory_item('A')], 'total': 1}
        client.list_offers.side_effect = APIError("Server error 500", status_code=500)

        listings = ListingRetriever(client).fetch_all()

        self.assertEqual(len(listings), 1)
        self.assertEqual(listings[0].status, 'INACTIVE')

    def test_offers_unauthorized_raises(self, mock_sleep):
        client = MagicMock()
        client.list_inventory_items.return_value = {'inventoryItems': [], 'total': 0}
        client.list_offers.side_effect = UnauthorizedError("Unauthorized", status_code=401)

        with self.assertRaises(UnauthorizedError):
            ListingRetriever(client).fetch_all()


class OrderTests(unittest.TestCase):
    def test_map_order(self):
        order = map_order(order_payload())

        self.assertEqual(order.order_id, '12-34567-89012')
        self.assertEqual(order.status, 'NOT_STARTED')
        self.assertEqual(order.total_amount, '35.98')
        self.assertEqual(order.shipping_address.name, 'Jane Doe')
        self.assertEqual(order.shipping_address.city, 'Springfield')
        self.assertEqual(order.shipping_address.phone_number, '2175550100')
        self.assertEqual(order.shipping_address.email, 'buyer@mail.example')
        self.assertEqual(order.items[0].sku, 'B0TEST')
        self.assertEqual(order.items[0].quantity, 2)
        self.assertEqual(order.items[0].price, 31.98)

    def test_map_order_falls_back_to_buyer_address(self):
        payload = order_payload()
        payload['fulfillmentStartInstructions'] = []
        payload['buyer']['buyerRegistrationAddress'] = {
            'fullName': 'John Roe', 'contactAddress': {'city': 'Portland', 'countryCode': 'US'},
        }

        address = map_order(payload).shipping_address

        self.assertEqual(address.name, 'John Roe')
        self.assertEqual(address.city, 'Portland')

    @patch('dropship_lister.retrieval.time.sleep')
    def test_fetch_unshipped_orders_pages(self, mock_sleep):
        client = MagicMock()
        client.list_orders.side_effect = [
            {'orders': [order_payload(), order_payload()], 'total': 3},
            {'orders': [order_payload()], 'total': 3},
        ]

        orders = OrderRetriever(client).fetch_unshipped_orders(limit=2)

        self.assertEqual(len(orders), 3)
        first = client.list_orders.call_args_list[0]
        self.assertEqual(first.args[0], UNSHIPPED_FILTER)
        self.assertEqual(first.kwargs['limit'], 2)
        self.assertEqual(client.list_orders.call_args_list[1].kwargs['offset'], 2)


if __name__ == '__main__':
    unittest.main()
