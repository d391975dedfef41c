"""
Local snapshot of the eBay category tree

Downloaded through the Taxonomy API and persisted as JSON; the snapshot is
reused until it is older than the configured TTL.
"""
import json
import time
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .client import TaxonomyClient, TaxonomyError
from .models import Category

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_DAYS = 90
PATH_SEPARATOR = ' > '


class CategoryCache:
    def __init__(self, cache_file, taxonomy_client: TaxonomyClient, max_age_days: int = DEFAULT_MAX_AGE_DAYS):
        self.cache_file = Path(cache_file)
        self.taxonomy_client = taxonomy_client
        self.max_age_days = max_age_days
        self.categories: Dict[str, Category] = {}
        self.last_updated: Optional[float] = None
        self.version: Optional[str] = None

    @property
    def category_count(self) -> int:
        return len(self.categories)

    def _read_snapshot(self) -> Optional[Dict[str, Any]]:
        if not self.cache_file.exists():
            return None
        try:
            with open(self.cache_file, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable category cache {self.cache_file}: {e}")
            return None

    def _load_snapshot(self, snapshot: Dict[str, Any]) -> None:
        self.categories = {
            str(cid): Category.from_dict(data) for cid, data in (snapshot.get('categories') or {}).items()
        }
        self.version = snapshot.get('version')
        self.last_updated = snapshot.get('lastUpdated')

    def _is_fresh(self, snapshot: Dict[str, Any]) -> bool:
        updated = snapshot.get('lastUpdated')
        if not updated:
            return False
        return time.time() - float(updated) < self.max_age_days * 86400

    def _save(self) -> None:
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        snapshot = {
            'categories': {cid: cat.to_dict() for cid, cat in self.categories.items()},
            'version': self.version,
            'lastUpdated': self.last_updated,
        }
        with open(self.cache_file, 'w', encoding='utf-8') as f:
            json.dump(snapshot, f)
        logger.info(f"Saved {len(self.categories)} categories to {self.cache_file}")

    def initialize(self, force_refresh: bool = False) -> bool:
        """Load a fresh snapshot or download the tree.

        When the download fails the current categories are kept, or a stale
        snapshot is loaded if nothing is in memory yet. Returns True when
        categories are available.
        """
        snapshot = self._read_snapshot()
        if snapshot and not force_refresh and self._is_fresh(snapshot):
            self._load_snapshot(snapshot)
            if self.categories:
                logger.info(f"Loaded {len(self.categories)} categories from cache")
                return True

        try:
            self.download_categories()
            return True
        except (TaxonomyError, OSError) as e:
            logger.error(f"Category download failed: {e}")

        if not self.categories and snapshot:
            logger.warning("Using stale category cache")
            self._load_snapshot(snapshot)
        return bool(self.categories)

    def download_categories(self, marketplace_tree_id: str = '0') -> int:
        logger.info(f"Downloading eBay category tree {marketplace_tree_id}...")
        tree = self.taxonomy_client.get_category_tree(marketplace_tree_id)
        root = tree.get('rootCategoryNode')
        if not root:
            raise TaxonomyError("Category tree response has no rootCategoryNode")

        categories: Dict[str, Category] = {}
        self._walk(root, None, 0, categories)
        if not categories:
            raise TaxonomyError("Category tree is empty")

        self.categories = categories
        self.version = tree.get('categoryTreeVersion')
        self.last_updated = time.time()
        self._save()
        return len(categories)

    def _walk(self, node: Dict[str, Any], parent_id: Optional[str], depth: int,
              out: Dict[str, Category]) -> None:
        info = node.get('category') or {}
        category_id = info.get('categoryId')
        children = node.get('childCategoryTreeNodes') or []

        # The tree root ("Root", level 0) is not a real category
        if category_id is not None and depth > 0:
            category_id = str(category_id)
            out[category_id] = Category(
                id=category_id,
                name=info.get('categoryName', ''),
                parent_id=parent_id,
                level=int(node.get('categoryTreeNodeLevel', depth)),
                leaf=not children,
            )
        else:
            category_id = parent_id

        for child in children:
            self._walk(child, category_id, depth + 1, out)

    def get_category(self, category_id: str) -> Optional[Category]:
        return self.categories.get(str(category_id))

    def is_leaf_category(self, category_id: str) -> bool:
        category = self.get_category(category_id)
        return bool(category and category.leaf)

    def get_category_path(self, category_id: str) -> str:
        names: List[str] = []
        seen = set()
        current = self.get_category(category_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            names.append(current.name)
            current = self.get_category(current.parent_id) if current.parent_id else None
        return PATH_SEPARATOR.join(reversed(names))

    def search_categories(self, keyword: str, leaf_only: bool = True) -> List[Category]:
        needle = (keyword or '').lower().strip()
        if not needle:
            return []
        matches = [
            cat for cat in self.categories.values()
            if needle in cat.name.lower() and (cat.leaf or not leaf_only)
        ]
        return sorted(matches, key=lambda c: c.name)

    def get_leaf_categories(self, min_level: int = 2, max_level: int = 4) -> List[Category]:
        return [
            cat for cat in self.categories.values()
            if cat.leaf and min_level <= cat.level <= max_level
        ]

    def get_all_categories(self) -> List[Category]:
        return list(self.categories.values())
