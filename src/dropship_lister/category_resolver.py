"""
Hybrid category selection: vector search narrows the taxonomy to a few
candidates, then one LLM call picks among them, rewrites the title and
extracts the brand
"""
import json
import logging
from typing import List, Optional

from pydantic import BaseModel, field_validator

from .category_cache import CategoryCache
from .llm import LLMClient, LLMResponseError, parse_llm_json
from .models import CategoryMatch, CategoryResolution, PreparedProduct
from .product_mapper import DEFAULT_BRAND, extract_brand
from .sanitizer import truncate_title
from .vector_index import VectorCategoryIndex, VectorIndexError

logger = logging.getLogger(__name__)

REVIEW_THRESHOLD = 0.5
KEYWORD_CONFIDENCE = 0.5
FIXED_FALLBACK_CONFIDENCE = 0.3

# Terms the model sometimes returns that eBay rejects as a brand
REJECTED_BRANDS = {
    'custom', 'personalized', 'handmade', 'vintage', 'unique', 'new',
    'generic', 'unknown', 'unbranded', 'brand', 'n/a', 'none',
}


class CategoryResolutionError(Exception):
    """No category could be chosen, not even a fallback"""
    pass


class CategorySelection(BaseModel):
    brand: str = DEFAULT_BRAND
    optimized_title: str
    category_id: str
    reasoning: str = ''
    domain_match: Optional[bool] = None

    @field_validator('category_id', mode='before')
    @classmethod
    def _id_as_string(cls, value):
        return str(value) if value is not None else value


def build_selection_prompt(product: PreparedProduct, candidates: List[CategoryMatch]) -> str:
    bullets = '\n'.join(product.bullet_points[:3]) or 'N/A'
    description = product.description[:200] or 'N/A'
    specs = json.dumps(product.specifications, indent=2) if product.specifications else 'N/A'
    candidates_json = json.dumps([
        {'id': c.category_id, 'name': c.name, 'path': c.path, 'similarity_score': c.score}
        for c in candidates
    ], indent=2)
    top_k = len(candidates)

    return f"""You are an eBay listing optimization expert. Perform THREE tasks:

TASK 1: EXTRACT BRAND NAME
- Identify the actual brand/manufacturer from the product data
- Check specifications for "Brand", "Brand Name" or "Manufacturer" fields
- Never use generic terms such as Custom, Personalized, Handmade, Vintage, Unique, New, Unknown, Unbranded
- If no clear brand exists, use "Generic"

TASK 2: OPTIMIZE TITLE (max 80 characters)
- Front-load brand, product type and key features
- Natural language, no keyword stuffing
- MUST be 80 characters or fewer

TASK 3: SELECT THE BEST CATEGORY FROM THE TOP {top_k} CANDIDATES
- Identify the product's target domain (human, pet, baby, automotive, electronics...)
- Check the ROOT category (first level of each path) against that domain
- A high similarity score does NOT mean the domain is correct; vector search matches word overlap
- Eliminate candidates whose root does not match, then pick the most specific remaining one
- If no candidate's root matches, still pick the closest one and set "domain_match" to false

PRODUCT DATA:
Title: {product.title}
Description: {description}
Key Features:
{bullets}
Specifications:
{specs}

TOP {top_k} CANDIDATE CATEGORIES (from vector search):
{candidates_json}

OUTPUT FORMAT (JSON only):
{{
  "brand": "extracted brand name or 'Generic'",
  "optimized_title": "optimized title (max 80 chars)",
  "category_id": "one of the candidate ids above",
  "reasoning": "1-2 sentences on why the root category matches",
  "domain_match": true
}}"""


def _clean_brand(brand: Optional[str], product: PreparedProduct) -> str:
    candidate = (brand or '').strip()
    if candidate and len(candidate) > 2 and candidate.lower() not in REJECTED_BRANDS:
        return candidate
    return product.brand or extract_brand(product.title, product.specifications)


class SemanticCategoryResolver:
    def __init__(self, vector_index: VectorCategoryIndex, category_cache: CategoryCache,
                 llm: LLMClient, top_k: int = 3, fallback_category_id: str = '360',
                 fallback_category_name: str = 'Art Prints'):
        self.vector_index = vector_index
        self.category_cache = category_cache
        self.llm = llm
        self.top_k = top_k
        self.fallback_category_id = fallback_category_id
        self.fallback_category_name = fallback_category_name

    def _search_text(self, product: PreparedProduct) -> str:
        text = ' '.join(product.bullet_points[:5])
        if product.description:
            text += ' ' + product.description[:300]
        return text.strip()

    def top_matches(self, title: str, description: str = '', top_k: Optional[int] = None) -> List[CategoryMatch]:
        return self.vector_index.search(title, description, top_k=top_k or self.top_k)

    def resolve(self, product: PreparedProduct) -> CategoryResolution:
        logger.info(f"Resolving category for: {product.title[:60]}...")
        try:
            candidates = self.top_matches(product.title, self._search_text(product))
        except VectorIndexError as e:
            logger.warning(f"Vector search failed ({e}), using keyword fallback")
            return self.keyword_fallback(product)

        if not candidates:
            logger.warning("Vector search returned no candidates, using keyword fallback")
            return self.keyword_fallback(product)

        for i, match in enumerate(candidates, start=1):
            logger.debug(f"  {i}. {match.score:.3f} - {match.name} (ID: {match.category_id})")

        try:
            response = self.llm.complete(build_selection_prompt(product, candidates),
                                         max_tokens=500, temperature=0.3)
            selection = parse_llm_json(response, CategorySelection)
        except LLMResponseError as e:
            logger.warning(f"LLM category selection failed ({e}), using keyword fallback")
            return self.keyword_fallback(product)

        chosen = next((c for c in candidates if c.category_id == str(selection.category_id)), None)
        if chosen is None:
            logger.warning(
                f"LLM selected {selection.category_id} which is not among the top {len(candidates)}, "
                f"using {candidates[0].category_id}"
            )
            chosen = candidates[0]

        needs_review = selection.domain_match is False or chosen.score < REVIEW_THRESHOLD
        if needs_review:
            logger.warning(f"Category {chosen.name} ({chosen.category_id}) flagged for review")

        title = selection.optimized_title.strip() or product.title
        if len(title) > 80:
            title = truncate_title(title)
            logger.warning(f"Optimized title exceeded 80 chars, truncated to: {title}")

        resolution = CategoryResolution(
            optimized_title=title,
            brand=_clean_brand(selection.brand, product),
            category_id=chosen.category_id,
            category_name=chosen.name,
            confidence=chosen.score,
            reasoning=selection.reasoning,
            needs_review=needs_review,
        )
        logger.info(f"Category: {resolution.category_name} (ID: {resolution.category_id}), "
                    f"score {resolution.confidence:.3f}")
        return resolution

    def keyword_fallback(self, product: PreparedProduct) -> CategoryResolution:
        """First leaf (levels 2-3) whose name contains one of the first five title words"""
        tokens = [t for t in product.title.lower().split()[:5] if len(t) >= 3]
        for token in tokens:
            for category in self.category_cache.search_categories(token, leaf_only=True):
                if 2 <= category.level <= 3:
                    logger.info(f"Keyword fallback matched '{token}' -> {category.name} ({category.id})")
                    return CategoryResolution(
                        optimized_title=truncate_title(product.title),
                        brand=product.brand or DEFAULT_BRAND,
                        category_id=category.id,
                        category_name=category.name,
                        confidence=KEYWORD_CONFIDENCE,
                        reasoning=f"Keyword match on '{token}'",
                        needs_review=True,
                    )

        if not self.fallback_category_id:
            raise CategoryResolutionError(f"No category found for {product.sku}")

        logger.warning(f"No keyword match, using fallback category {self.fallback_category_id}")
        return CategoryResolution(
            optimized_title=truncate_title(product.title),
            brand=product.brand or DEFAULT_BRAND,
            category_id=self.fallback_category_id,
            category_name=self.fallback_category_name,
            confidence=FIXED_FALLBACK_CONFIDENCE,
            reasoning='Fallback category',
            needs_review=True,
        )
