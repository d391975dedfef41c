"""
Category aspect requirements and LLM-based aspect filling
"""
import json
import logging
from typing import Any, Dict, List, Optional

from .client import TaxonomyClient, TaxonomyError
from .llm import LLMClient, LLMResponseError, extract_json_object
from .models import AspectInfo, AspectValue, CategoryRequirements, PreparedProduct

logger = logging.getLogger(__name__)

MAX_ASPECT_LENGTH = 65
MAX_ALLOWED_VALUES = 50
REQUIRED_PROMPT_VALUES = 20
RECOMMENDED_PROMPT_VALUES = 30

_BREAK_POINTS = ('. ', ': ', '; ', ', ')


def smart_truncate(text: str, max_length: int = MAX_ASPECT_LENGTH) -> str:
    """Shorten text to max_length, preferring phrase then word boundaries"""
    if len(text) <= max_length:
        return text

    truncate_at = max_length - 3
    head = text[:truncate_at]

    for delimiter in _BREAK_POINTS:
        pos = head.rfind(delimiter)
        if pos > max_length / 2:
            return text[:pos].strip()

    last_space = head.rfind(' ')
    if last_space > 0:
        return head[:last_space].strip() + '...'

    return head.strip() + '...'


def _to_aspect(raw: Dict[str, Any]) -> AspectInfo:
    constraint = raw.get('aspectConstraint') or {}
    values = [v.get('localizedValue') for v in raw.get('aspectValues') or [] if v.get('localizedValue')]
    return AspectInfo(
        name=raw.get('localizedAspectName', ''),
        required=bool(constraint.get('aspectRequired')),
        cardinality=constraint.get('itemToAspectCardinality', 'SINGLE'),
        mode=constraint.get('aspectMode', 'FREE_TEXT'),
        data_type=constraint.get('aspectDataType', 'STRING'),
        values=values[:MAX_ALLOWED_VALUES],
        total_values=len(values),
    )


def _aspect_prompt_info(aspect: AspectInfo, priority: str, max_values: int) -> Dict[str, Any]:
    info: Dict[str, Any] = {
        'name': aspect.name,
        'mode': aspect.mode,
        'cardinality': aspect.cardinality,
        'priority': priority,
    }
    if aspect.values and aspect.mode != 'FREE_TEXT':
        info['allowed_values'] = aspect.values[:max_values]
    return info


class RequirementsResolver:
    def __init__(self, taxonomy_client: TaxonomyClient, llm: LLMClient):
        self.taxonomy_client = taxonomy_client
        self.llm = llm

    def get_requirements(self, category_id: str) -> CategoryRequirements:
        """Aspects for a category split into required/recommended/optional.

        Transport failures yield empty buckets rather than an error.
        """
        requirements = CategoryRequirements()
        try:
            data = self.taxonomy_client.get_item_aspects(category_id)
        except TaxonomyError as e:
            logger.error(f"Failed to fetch requirements for category {category_id}: {e}")
            return requirements

        for raw in data.get('aspects') or []:
            aspect = _to_aspect(raw)
            if not aspect.name:
                continue
            usage = (raw.get('aspectConstraint') or {}).get('aspectUsage')
            if aspect.required:
                requirements.required.append(aspect)
            elif usage == 'RECOMMENDED':
                requirements.recommended.append(aspect)
            else:
                requirements.optional.append(aspect)

        logger.info(f"Category {category_id}: {len(requirements.required)} required, "
                    f"{len(requirements.recommended)} recommended aspects")
        return requirements

    def _offered_recommended(self, requirements: CategoryRequirements) -> List[AspectInfo]:
        return [
            a for a in requirements.recommended
            if a.mode == 'FREE_TEXT' or max(a.total_values, len(a.values)) <= MAX_ALLOWED_VALUES
        ]

    def build_prompt(self, product: PreparedProduct, required: List[AspectInfo],
                     recommended: List[AspectInfo]) -> str:
        aspects = [_aspect_prompt_info(a, 'REQUIRED', REQUIRED_PROMPT_VALUES) for a in required]
        aspects += [_aspect_prompt_info(a, 'RECOMMENDED', RECOMMENDED_PROMPT_VALUES) for a in recommended]

        return f"""You are filling out eBay listing fields based on product information.

PRODUCT DATA:
Title: {product.title}
Description: {product.description[:500]}
Key Features: {json.dumps(product.bullet_points[:5])}

ASPECTS TO FILL:
{json.dumps(aspects, indent=2)}

INSTRUCTIONS:
1. REQUIRED aspects: always provide a value, using the best reasonable default if it is not stated
2. RECOMMENDED aspects: fill only when the product data clearly provides the information
3. If mode is SELECTION_ONLY, choose from allowed_values exactly as written
4. If mode is FREE_TEXT, extract the value from the product data
5. If cardinality is MULTI, return an array; if SINGLE, return a single string

CHARACTER LIMIT: every value MUST be {MAX_ASPECT_LENGTH} characters or fewer. Keep only the key information.

OUTPUT FORMAT (JSON only):
{{
  "aspect_name": "value",
  "another_aspect": ["value1", "value2"]
}}"""

    def fill(self, product: PreparedProduct, requirements: CategoryRequirements,
             include_recommended: bool = True) -> Dict[str, AspectValue]:
        """Ask the LLM for aspect values; returns {} when it fails"""
        required = requirements.required
        recommended = self._offered_recommended(requirements) if include_recommended else []
        if not required and not recommended:
            return {}

        logger.info(f"Filling {len(required)} required + {len(recommended)} recommended aspects")
        try:
            response = self.llm.complete(self.build_prompt(product, required, recommended),
                                         max_tokens=2000, temperature=0)
            raw = json.loads(extract_json_object(response))
        except (LLMResponseError, ValueError) as e:
            logger.warning(f"Aspect filling failed ({e}), continuing without aspects")
            return {}
        if not isinstance(raw, dict):
            return {}

        filled: Dict[str, AspectValue] = {}
        for aspect in required + recommended:
            if aspect.name not in raw:
                if aspect.required:
                    logger.warning(f"LLM left required aspect '{aspect.name}' empty")
                continue
            value = self._validate(aspect, raw[aspect.name])
            if value is not None:
                filled[aspect.name] = value

        logger.info(f"Filled {len(filled)} aspects")
        return filled

    def _validate(self, aspect: AspectInfo, raw_value: Any) -> Optional[AspectValue]:
        if raw_value is None:
            return None
        values = raw_value if isinstance(raw_value, list) else [raw_value]
        values = [str(v).strip() for v in values if v is not None and str(v).strip()]

        if aspect.values and aspect.mode != 'FREE_TEXT':
            canonical = {v.lower(): v for v in aspect.values}
            matched = []
            for value in values:
                if value.lower() in canonical:
                    matched.append(canonical[value.lower()])
                elif aspect.required:
                    logger.warning(f"'{value}' is not an allowed value for required aspect '{aspect.name}'")
                    matched.append(value)
                else:
                    logger.debug(f"Dropping '{value}' for '{aspect.name}': not an allowed value")
            values = matched

        truncated = []
        for value in values:
            if len(value) > MAX_ASPECT_LENGTH:
                short = smart_truncate(value)
                logger.warning(f"Truncated '{aspect.name}' value to {len(short)} chars")
                value = short
            truncated.append(value)

        if not truncated:
            return None
        if aspect.cardinality == 'MULTI':
            return truncated
        return truncated[0]
