"""
Product input: scraper JSON files and a bounded producer/consumer queue
"""
import json
import queue
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .models import ProductRecord

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


def load_product_file(path) -> List[ProductRecord]:
    """Records from a JSON array or a {"products": [...]} document.

    Entries without an id are skipped with a warning.
    """
    path = Path(path)
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if isinstance(data, dict):
        entries = data.get('products')
        if entries is None:
            entries = [data]
    elif isinstance(data, list):
        entries = data
    else:
        raise ValueError(f"{path}: expected a JSON array or object")

    records = []
    for i, entry in enumerate(entries):
        try:
            records.append(ProductRecord.from_dict(entry))
        except (ValueError, AttributeError, TypeError) as e:
            logger.warning(f"{path.name}: skipping product #{i + 1}: {e}")
    logger.info(f"Loaded {len(records)} product(s) from {path.name}")
    return records


class ProductQueue:
    """Bounded queue between one producer and one consumer; close() ends the stream"""

    _END = object()

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = False

    def put(self, record: ProductRecord, source_file: Optional[str] = None, timeout: Optional[float] = None):
        if self._closed:
            raise RuntimeError("ProductQueue is closed")
        self._queue.put((record, source_file), timeout=timeout)

    def put_file(self, path) -> int:
        records = load_product_file(path)
        for record in records:
            self.put(record, source_file=Path(path).name)
        return len(records)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put(self._END)

    def __iter__(self) -> Iterator[Tuple[ProductRecord, Optional[str]]]:
        while True:
            item = self._queue.get()
            if item is self._END:
                return
            yield item
