"""
Listing pipeline: sanitize -> price -> resolve category -> fill aspects -> publish

Records are processed one at a time; every record yields exactly one
ListingResult, and a failure in one record never stops the run.
"""
import time
import logging
from dataclasses import replace
from typing import Iterable, List, Optional

from .auth import AppTokenProvider, get_token_manager
from .category_cache import CategoryCache
from .category_resolver import CategoryResolutionError, SemanticCategoryResolver
from .client import TaxonomyClient, eBayClient
from .config import Config, load_pricing_settings
from .listings_store import ListingsStore
from .llm import LLMClient
from .models import ListingDraft, ListingResult, PricingSettings, ProductRecord
from .product_mapper import build_aspects, build_html_description, prepare_product
from .publisher import ListingPublisher
from .requirements import RequirementsResolver
from .source import ProductQueue
from .vector_index import OpenAIEmbeddingProvider, VectorCategoryIndex, VectorIndexError

logger = logging.getLogger(__name__)

STAGE_CATEGORY = 'category'
STAGE_PROCESSING = 'processing'


class PipelineError(Exception):
    """Pipeline could not be initialized"""
    pass


class ListingPipeline:
    def __init__(self, pricing_settings: PricingSettings, category_cache: CategoryCache,
                 vector_index: VectorCategoryIndex, resolver: SemanticCategoryResolver,
                 requirements_resolver: RequirementsResolver, publisher: ListingPublisher,
                 store: Optional[ListingsStore] = None, account_id: str = 'default'):
        self.pricing_settings = pricing_settings
        self.category_cache = category_cache
        self.vector_index = vector_index
        self.resolver = resolver
        self.requirements_resolver = requirements_resolver
        self.publisher = publisher
        self.store = store
        self.account_id = account_id

    def initialize(self, rebuild_index: bool = False) -> None:
        if not self.category_cache.initialize():
            raise PipelineError("eBay categories are unavailable (no download and no cached snapshot)")
        logger.info(f"Category cache ready: {self.category_cache.category_count} categories")

        try:
            self.vector_index.build(self.category_cache, force_rebuild=rebuild_index)
        except VectorIndexError as e:
            logger.warning(f"Vector index unavailable ({e}); categories will be chosen by keyword")

    def process(self, record: ProductRecord, source_file: Optional[str] = None) -> ListingResult:
        start = time.time()
        resolution = None
        logger.info(f"Processing {record.sku}: {record.title[:50]}...")
        try:
            prepared = prepare_product(record, self.pricing_settings)
            if prepared.sale_price <= 0:
                raise ValueError(f"No usable source price ('{record.price}')")
            resolution = self.resolver.resolve(prepared)

            requirements = self.requirements_resolver.get_requirements(resolution.category_id)
            filled = {}
            if requirements.required or requirements.recommended:
                # Aspects are filled against the optimized title
                filled = self.requirements_resolver.fill(
                    replace(prepared, title=resolution.optimized_title), requirements, include_recommended=True,
                )
            draft = ListingDraft(
                sku=prepared.sku,
                title=resolution.optimized_title,
                description=prepared.description,
                listing_description=build_html_description(
                    resolution.optimized_title, prepared.description, prepared.bullet_points,
                    prepared.images, prepared.specifications,
                ),
                images=prepared.images,
                aspects=build_aspects(resolution.brand, prepared.sku, filled),
                weight=prepared.weight,
                price=prepared.sale_price,
                category_id=resolution.category_id,
                category_name=resolution.category_name,
            )
            result = self.publisher.publish(draft)
            result.needs_review = resolution.needs_review
        except CategoryResolutionError as e:
            logger.error(f"{record.sku}: {e}")
            result = ListingResult.failed(record.sku, STAGE_CATEGORY, str(e))
        except Exception as e:
            logger.exception(f"{record.sku}: unexpected error")
            result = ListingResult.failed(record.sku, STAGE_PROCESSING, str(e))

        result.processing_time = time.time() - start
        self._record(record, result, source_file, resolution)
        return result

    def _record(self, record, result, source_file, resolution) -> None:
        if self.store is None:
            return
        try:
            self.store.upsert(record, result, source_file=source_file, account_id=self.account_id,
                              optimized_title=resolution.optimized_title if resolution else None)
        except Exception as e:
            logger.error(f"{record.sku}: could not store listing record: {e}")

    def process_all(self, records: Iterable[ProductRecord], source_file: Optional[str] = None) -> List[ListingResult]:
        results = [self.process(record, source_file) for record in records]
        self._log_summary(results)
        return results

    def run(self, product_queue: ProductQueue) -> List[ListingResult]:
        """Consume the queue until its producer closes it"""
        results = [self.process(record, source_file) for record, source_file in product_queue]
        self._log_summary(results)
        return results

    def _log_summary(self, results: List[ListingResult]) -> None:
        succeeded = sum(1 for r in results if r.succeeded)
        logger.info(f"Finished: {succeeded} succeeded, {len(results) - succeeded} failed")


def build_pipeline(config: Config, store: Optional[ListingsStore] = None) -> ListingPipeline:
    """Wire the production collaborators for one seller account"""
    config.validate()
    config.validate_llm()

    token_manager = get_token_manager(config.suffix)
    client = eBayClient(config, token_manager)
    taxonomy = TaxonomyClient(config, AppTokenProvider(config))
    llm = LLMClient(config.openai_api_key, model=config.llm_model)

    category_cache = CategoryCache(config.category_cache_file, taxonomy,
                                   max_age_days=config.category_cache_max_age_days)
    vector_index = VectorCategoryIndex(
        config.vector_index_file,
        OpenAIEmbeddingProvider(config.openai_api_key, model_name=config.embedding_model),
    )
    resolver = SemanticCategoryResolver(
        vector_index, category_cache, llm,
        top_k=config.category_top_k,
        fallback_category_id=config.fallback_category_id,
        fallback_category_name=config.fallback_category_name,
    )

    return ListingPipeline(
        pricing_settings=load_pricing_settings(),
        category_cache=category_cache,
        vector_index=vector_index,
        resolver=resolver,
        requirements_resolver=RequirementsResolver(taxonomy, llm),
        publisher=ListingPublisher(client, config),
        store=store if store is not None else ListingsStore(config.listings_db_file),
        account_id=config.suffix or 'default',
    )
