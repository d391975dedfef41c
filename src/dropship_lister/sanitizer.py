"""
Strips marketplace policy violations (links, contact details, off-platform
payment requests, scripts, competitor mentions) from listing text
"""
import re
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Pattern, Tuple

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 80

_SOCIAL_SITES = r'(?:facebook|instagram|twitter|tiktok|youtube|pinterest)'

# Applied in order; each match is removed and recorded
PATTERNS: List[Tuple[str, List[Pattern]]] = [
    ('emails', [
        re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}'),
    ]),
    ('urls', [
        re.compile(r'https?://[^\s<>"{}|\\^`\[\]]+', re.IGNORECASE),
        re.compile(r'www\.[^\s<>"{}|\\^`\[\]]+', re.IGNORECASE),
        re.compile(r'[a-zA-Z0-9.-]+\.(?:com|net|org|io|co|shop|store|amazon|ebay)[^\s]*', re.IGNORECASE),
    ]),
    ('phone_numbers', [
        re.compile(r'\+?1?[-.\s]?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}'),
        re.compile(r'\d{3}[-.\s]\d{4}'),
    ]),
    ('social_media', [
        re.compile(r'(?:follow|like|subscribe|check out)(?:\s+(?:us|me|our))?\s+(?:on|at)\s+' + _SOCIAL_SITES,
                   re.IGNORECASE),
        re.compile(r'@[a-zA-Z0-9_]+'),
        re.compile(_SOCIAL_SITES + r'(?:\.com)?(?:/[^\s]*)?', re.IGNORECASE),
    ]),
    ('external_transaction', [
        re.compile(r'(?:contact|message|call|text|email|reach out to)\s+(?:us|me|seller)?\s*'
                   r'(?:for|to|about|regarding)', re.IGNORECASE),
        re.compile(r'(?:pay|payment|checkout|buy|purchase)\s+(?:via|through|using|on)\s+'
                   r'(?:paypal|venmo|zelle|cashapp|crypto)', re.IGNORECASE),
        re.compile(r'(?:visit|check|see)\s+(?:our|my)?\s*(?:website|site|store|shop)', re.IGNORECASE),
    ]),
    ('code_fragments', [
        re.compile(r'<script[^>]*>[\s\S]*?</script>', re.IGNORECASE),
        re.compile(r'javascript:', re.IGNORECASE),
        re.compile(r'onclick\s*=', re.IGNORECASE),
        re.compile(r'onerror\s*=', re.IGNORECASE),
    ]),
    ('competitors', [
        re.compile(r'(?:also|available|find|get|buy)\s+(?:on|at|from)\s+'
                   r'(?:amazon|walmart|target|aliexpress)', re.IGNORECASE),
    ]),
]

_WHITESPACE = re.compile(r'\s+')
_TRAILING_SEPARATORS = re.compile(r'[\s\-–—,:;|/\\]+$')


@dataclass
class SanitizationResult:
    cleaned: str
    violations: List[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.violations


@dataclass
class SanitizedProduct:
    title: str
    description: str
    bullet_points: List[str]
    specifications: Dict[str, str]
    violations: List[str] = field(default_factory=list)


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(' ', text).strip()


def _single_pass(text: str, violations: List[str]) -> Tuple[str, bool]:
    found = False
    for category, patterns in PATTERNS:
        for pattern in patterns:
            for match in pattern.findall(text):
                if match:
                    violations.append(f"[{category}] {match}")
                    found = True
            text = pattern.sub('', text)
    return _normalize(text), found


def sanitize(text) -> SanitizationResult:
    """Remove every violation from text.

    Passes repeat until one finds nothing, since removing a match can join
    fragments into a new one.
    """
    if not text or not isinstance(text, str):
        return SanitizationResult(cleaned='')

    violations: List[str] = []
    cleaned, found = _single_pass(text, violations)
    while found and cleaned:
        cleaned, found = _single_pass(cleaned, violations)
    return SanitizationResult(cleaned=cleaned, violations=violations)


def truncate_title(title: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """Cut at the last space within max_length, never mid-word unless there is no space"""
    title = (title or '').strip()
    if len(title) <= max_length:
        return title

    cut = title.rfind(' ', 0, max_length + 1)
    if cut <= 0:
        return title[:max_length]
    truncated = _TRAILING_SEPARATORS.sub('', title[:cut])
    return truncated or title[:max_length]


def sanitize_title(title: str) -> SanitizationResult:
    result = sanitize(title)
    result.cleaned = truncate_title(_normalize(result.cleaned.replace('<', '').replace('>', '')))
    return result


def sanitize_description(description: str) -> SanitizationResult:
    return sanitize(description)


def sanitize_bullet_points(bullets: List[str]) -> Tuple[List[str], List[str]]:
    """Returns (cleaned bullets, violations); bullets emptied by cleaning are dropped"""
    cleaned: List[str] = []
    violations: List[str] = []
    for bullet in bullets or []:
        result = sanitize(bullet)
        violations.extend(result.violations)
        if result.cleaned:
            cleaned.append(result.cleaned)
    return cleaned, violations


def sanitize_product(record) -> SanitizedProduct:
    """Sanitize every text field of a ProductRecord"""
    title = sanitize_title(record.title)
    description = sanitize_description(record.description)
    bullets, bullet_violations = sanitize_bullet_points(record.bullet_points)

    specs: Dict[str, str] = {}
    spec_violations: List[str] = []
    for key, value in (record.specifications or {}).items():
        result = sanitize(value)
        spec_violations.extend(result.violations)
        if result.cleaned:
            specs[key] = result.cleaned

    violations = title.violations + description.violations + bullet_violations + spec_violations
    if violations:
        logger.warning(f"{record.sku}: removed {len(violations)} policy violation(s)")
        for violation in violations:
            logger.debug(f"{record.sku}: {violation}")

    return SanitizedProduct(
        title=title.cleaned,
        description=description.cleaned,
        bullet_points=bullets,
        specifications=specs,
        violations=violations,
    )


def validate_clean(text: str) -> bool:
    return sanitize(text).is_clean
