"""
Command-line entry point: list every product in one or more scraper JSON files

Usage:
    dropship-lister products.json [more.json ...] [--account 2] [--rebuild-index] [--verbose]
"""
import sys
import logging
import argparse
import threading
from pathlib import Path
from typing import List, Optional

from .auth import TokenError
from .config import ConfigurationError, get_config
from .pipeline import PipelineError, build_pipeline
from .source import ProductQueue

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='dropship-lister',
        description='Create eBay listings from scraped product JSON files',
    )
    parser.add_argument('files', nargs='+', type=Path, help='Product JSON file(s)')
    parser.add_argument('--account', default='', help='Account suffix (EBAY_APP_ID_<suffix> etc.)')
    parser.add_argument('--rebuild-index', action='store_true', help='Re-embed all categories')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser.parse_args(argv)


def _produce(product_queue: ProductQueue, files: List[Path]) -> None:
    try:
        for path in files:
            try:
                product_queue.put_file(path)
            except (OSError, ValueError) as e:
                logger.error(f"Could not read {path}: {e}")
    finally:
        product_queue.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        pipeline = build_pipeline(get_config(args.account))
        pipeline.initialize(rebuild_index=args.rebuild_index)
    except (ConfigurationError, TokenError, PipelineError) as e:
        print(f"❌ Configuration Error: {e}")
        return 1

    product_queue = ProductQueue()
    producer = threading.Thread(target=_produce, args=(product_queue, args.files), daemon=True)
    producer.start()

    try:
        results = pipeline.run(product_queue)
    except KeyboardInterrupt:
        print("\n\nCancelled by user")
        return 1
    producer.join()

    succeeded = [r for r in results if r.succeeded]
    failed = [r for r in results if not r.succeeded]

    print("=" * 80)
    print(f"✓ {len(succeeded)} listed, {len(failed)} failed")
    for result in succeeded:
        flag = "  (review category)" if result.needs_review else ""
        print(f"  ✓ {result.sku}: listing {result.listing_id} at ${result.price:.2f}{flag}")
    for result in failed:
        print(f"  ❌ {result.sku}: [{result.stage}] {result.error}")

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
