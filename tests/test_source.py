import sys
import json
import shutil
import tempfile
import threading
import unittest
from pathlib import Path

APIHELPERS_SRC = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(APIHELPERS_SRC))

from dropship_lister.models import ProductRecord
from dropship_lister.source import ProductQueue, load_product_file


class LoadProductFileTests(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def _write(self, name, data):
        path = self.tmp / name
        path.write_text(json.dumps(data))
        return path

    def test_array(self):
        path = self._write('a.json', [
            {'asin': 'B01', 'title': 'Mug', 'price': '$12.00', 'bulletPoints': ['Safe'],
             'deliveryFee': '$3.00', 'originalAmazonUrl': 'https://www.amazon.com/dp/B01'},
            {'title': 'no id'},
        ])

        records = load_product_file(path)

        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].sku, 'B01')
        self.assertEqual(records[0].bullet_points, ['Safe'])
        self.assertEqual(records[0].delivery_fee, '$3.00')
        self.assertEqual(records[0].original_url, 'https://www.amazon.com/dp/B01')
        self.assertEqual(records[0].source, 'amazon')

    def test_products_document(self):
        path = self._write('b.json', {'products': [{'asin': 'B02', 'title': 'Lamp', 'source': 'Yami',
                                                    'priceMultiplier': 2}]})

        records = load_product_file(path)

        self.assertEqual(records[0].source, 'yami')
        self.assertEqual(records[0].price_multiplier, 2.0)

    def test_single_object(self):
        path = self._write('c.json', {'asin': 'B03', 'title': 'Leash'})

        self.assertEqual([r.sku for r in load_product_file(path)], ['B03'])

    def test_non_object_entries_skipped(self):
        path = self._write('d.json', ['oops', {'asin': 'B04', 'title': 'Bowl'}])

        self.assertEqual([r.sku for r in load_product_file(path)], ['B04'])

    def test_invalid_top_level(self):
        path = self._write('e.json', 42)

        with self.assertRaises(ValueError):
            load_product_file(path)


class ProductQueueTests(unittest.TestCase):
    def test_iterates_until_closed(self):
        product_queue = ProductQueue(maxsize=2)
        records = [ProductRecord(sku=f"B{i}", title=f"Item {i}") for i in range(5)]

        def produce():
            for record in records:
                product_queue.put(record, source_file='batch.json')
            product_queue.close()

        producer = threading.Thread(target=produce)
        producer.start()
        received = list(product_queue)
        producer.join()

        self.assertEqual([r.sku for r, _ in received], [r.sku for r in records])
        self.assertTrue(all(source == 'batch.json' for _, source in received))

    def test_put_after_close_raises(self):
        product_queue = ProductQueue()
        product_queue.close()

        with self.assertRaises(RuntimeError):
            product_queue.put(ProductRecord(sku="B1", title="x"))

    def test_put_file(self):
        tmp = Path(tempfile.mkdtemp())
        try:
            path = tmp / 'batch.json'
            path.write_text(json.dumps([{'asin': 'B1', 'title': 'Mug'}, {'asin': 'B2', 'title': 'Lamp'}]))
            product_queue = ProductQueue()

            self.assertEqual(product_queue.put_file(path), 2)
            product_queue.close()

            self.assertEqual([(r.sku, s) for r, s in product_queue], [('B1', 'batch.json'), ('B2', 'batch.json')])
        finally:
            shutil.rmtree(tmp)


if __name__ == '__main__':
    unittest.main()
