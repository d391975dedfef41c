"""
Historical record of published listings (source product + eBay response),
one row per SKU, used to map orders back to source products
"""
import json
import sqlite3
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import ListingResult, ProductRecord

logger = logging.getLogger(__name__)

JSON_COLUMNS = ('bullet_points', 'specifications', 'images')

COLUMNS = (
    'sku', 'title', 'description', 'bullet_points', 'specifications', 'images',
    'original_price', 'delivery_fee', 'source', 'original_url',
    'offer_id', 'listing_id', 'category_id', 'category_name', 'ebay_price', 'optimized_title',
    'source_file', 'published_at', 'account_id', 'processing_time', 'status',
    'failure_stage', 'failure_error',
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS listings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sku TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    description TEXT,
    bullet_points TEXT,
    specifications TEXT,
    images TEXT,
    original_price TEXT,
    delivery_fee TEXT,
    source TEXT,
    original_url TEXT,
    offer_id TEXT,
    listing_id TEXT,
    category_id TEXT,
    category_name TEXT,
    ebay_price REAL,
    optimized_title TEXT,
    source_file TEXT,
    published_at TEXT NOT NULL,
    account_id TEXT NOT NULL,
    processing_time REAL,
    status TEXT NOT NULL,
    failure_stage TEXT,
    failure_error TEXT
);
CREATE INDEX IF NOT EXISTS idx_listings_listing_id ON listings (listing_id);
CREATE INDEX IF NOT EXISTS idx_listings_account ON listings (account_id);
"""


@dataclass
class ListingStats:
    total_listings: int = 0
    successful_listings: int = 0
    failed_listings: int = 0
    by_source: Dict[str, int] = field(default_factory=dict)
    by_category: Dict[str, int] = field(default_factory=dict)
    by_account: Dict[str, int] = field(default_factory=dict)


class ListingsStore:
    def __init__(self, db_path):
        self.db_path = str(db_path)
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        with self._conn:
            self._conn.executescript(SCHEMA)

    def close(self) -> None:
        self._conn.close()

    def _to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        data = dict(row)
        for column in JSON_COLUMNS:
            if data.get(column):
                data[column] = json.loads(data[column])
        return data

    def upsert(self, record: ProductRecord, result: ListingResult, source_file: Optional[str] = None,
               account_id: str = 'default', optimized_title: Optional[str] = None) -> Dict[str, Any]:
        """Replace the row for this SKU with a freshly built one; only the row id survives"""
        row = {
            'sku': result.sku,
            'title': record.title,
            'description': record.description,
            'bullet_points': json.dumps(record.bullet_points),
            'specifications': json.dumps(record.specifications),
            'images': json.dumps(record.images),
            'original_price': record.price,
            'delivery_fee': record.delivery_fee,
            'source': record.source,
            'original_url': record.original_url,
            'offer_id': result.offer_id,
            'listing_id': result.listing_id,
            'category_id': result.category_id,
            'category_name': result.category_name,
            'ebay_price': result.price,
            'optimized_title': optimized_title,
            'source_file': source_file,
            'published_at': datetime.now(timezone.utc).isoformat(),
            'account_id': account_id or 'default',
            'processing_time': result.processing_time,
            'status': result.status,
            'failure_stage': result.stage,
            'failure_error': result.error,
        }
        placeholders = ', '.join(f':{c}' for c in COLUMNS)
        updates = ', '.join(f'{c} = excluded.{c}' for c in COLUMNS if c != 'sku')
        sql = (f"INSERT INTO listings ({', '.join(COLUMNS)}) VALUES ({placeholders}) "
               f"ON CONFLICT(sku) DO UPDATE SET {updates}")

        with self._lock, self._conn:
            self._conn.execute(sql, row)
        logger.debug(f"Stored listing record for {result.sku} ({result.status})")
        return self.get(result.sku)

    def get(self, sku: str) -> Optional[Dict[str, Any]]:
        row = self._conn.execute("SELECT * FROM listings WHERE sku = ?", (sku,)).fetchone()
        return self._to_dict(row) if row else None

    def get_by_listing_id(self, listing_id: str) -> Optional[Dict[str, Any]]:
        row = self._conn.execute("SELECT * FROM listings WHERE listing_id = ?", (listing_id,)).fetchone()
        return self._to_dict(row) if row else None

    def query(self, status: Optional[str] = None, source: Optional[str] = None,
              account_id: Optional[str] = None, category_id: Optional[str] = None,
              limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        clauses = []
        params: List[Any] = []
        for column, value in (('status', status), ('source', source),
                              ('account_id', account_id), ('category_id', category_id)):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)

        sql = "SELECT * FROM listings"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY published_at DESC"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        return [self._to_dict(r) for r in self._conn.execute(sql, params).fetchall()]

    def search_by_title(self, term: str, limit: int = 50) -> List[Dict[str, Any]]:
        pattern = f"%{term}%"
        rows = self._conn.execute(
            "SELECT * FROM listings WHERE title LIKE ? OR optimized_title LIKE ? "
            "ORDER BY published_at DESC LIMIT ?",
            (pattern, pattern, limit),
        ).fetchall()
        return [self._to_dict(r) for r in rows]

    def stats(self, account_id: Optional[str] = None) -> ListingStats:
        listings = self.query(account_id=account_id)
        stats = ListingStats(total_listings=len(listings))
        for listing in listings:
            if listing['status'] == 'success':
                stats.successful_listings += 1
            elif listing['status'] == 'failed':
                stats.failed_listings += 1
            source = listing.get('source') or 'unknown'
            stats.by_source[source] = stats.by_source.get(source, 0) + 1
            category = listing.get('category_name') or 'uncategorized'
            stats.by_category[category] = stats.by_category.get(category, 0) + 1
            stats.by_account[listing['account_id']] = stats.by_account.get(listing['account_id'], 0) + 1
        return stats

    def count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM listings").fetchone()[0]

    def delete(self, sku: str) -> bool:
        with self._lock, self._conn:
            cursor = self._conn.execute("DELETE FROM listings WHERE sku = ?", (sku,))
        return cursor.rowcount > 0
