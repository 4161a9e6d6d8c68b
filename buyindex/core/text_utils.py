"""Helpers that turn product titles into provider search queries."""

import re
from typing import List, Optional

# Generic words that make a poor brand guess when they lead a title.
_NON_BRAND_WORDS = {"the", "new", "a", "an", "for", "with"}


def meaningful_words(title: str) -> List[str]:
    """Split a product title into search-worthy words.

    Parenthesised model numbers and quote characters are dropped, as are
    one-letter tokens and bare numbers.

    Examples:
        ``'LG 27" 4K UHD IPS Monitor (27UP850-W)'`` → ``["LG", "27", "4K", ...]``
        is filtered to ``["LG", "4K", "UHD", "IPS", "Monitor"]``.
    """
    cleaned = re.sub(r"\([^)]*\)", "", title or "")
    cleaned = re.sub(r"[\"'`]", "", cleaned)
    return [w for w in cleaned.split() if len(w) > 1 and not w.isdigit()]


def build_search_query(
    title: str,
    max_words: int = 5,
    suffix: str = "",
    default: str = "tech product",
) -> str:
    """Build a short query from the first ``max_words`` meaningful words of a title."""
    words = meaningful_words(title)[:max_words]
    query = " ".join(words + ([suffix] if suffix and words else [])).strip()
    if query:
        return query
    return f"{default} {suffix}".strip()


def sanitize_keyword(keyword: str) -> str:
    """Strip characters that make search/trend APIs reject a keyword."""
    cleaned = re.sub(r"[\"'`]", "", keyword or "")
    return re.sub(r"\s+", " ", cleaned).strip()[:100]


def extract_brand(title: str) -> Optional[str]:
    """Return the first word of the title when it looks like a brand name."""
    parts = (title or "").strip().split()
    if not parts:
        return None
    first = parts[0].strip("\"'`,")
    if len(first) < 2 or len(first) > 15 or first[0].isdigit():
        return None
    if first.lower() in _NON_BRAND_WORDS or not first[0].isupper():
        return None
    return first


def _standalone_match(text: str, phrase: str) -> bool:
    """Return True if phrase appears in text and is not preceded by a letter."""
    pattern = r'\b' + re.escape(phrase) + r'\b'
    for m in re.finditer(pattern, text):
        before = text[:m.start()].rstrip()
        if before and before[-1].isalpha():
            continue
        return True
    return False


def is_relevant_title(headline: str, product_title: str) -> bool:
    """Return True if a news headline mentions the product's brand or lead phrase.

    The lead phrase is the first two meaningful words of the product title
    (e.g. ``"Sony WH-1000XM5"``). Matches must be standalone, so ``"Sonya"``
    does not count as a mention of ``"Sony"``.
    """
    text = (headline or "").lower()
    if not text:
        return False

    words = meaningful_words(product_title)
    lead = " ".join(words[:2]).lower()
    if lead and _standalone_match(text, lead):
        return True

    brand = extract_brand(product_title)
    if brand and _standalone_match(text, brand.lower()):
        return True

    return False


def trend_keyword_candidates(title: str, category: Optional[str] = None) -> List[str]:
    """Ordered, de-duplicated keywords to try against a search-trend API.

    The category goes first because broad product types ("keyboard",
    "headphones") reliably have trend data; brand and title phrases follow.
    """
    candidates: List[str] = []
    category_kw = (category or "").strip().lower() or None
    brand = extract_brand(title)

    if category_kw:
        candidates.append(category_kw)
    if brand and category_kw:
        candidates.append(f"{brand} {category_kw}")

    words = meaningful_words(title)
    for n in (4, 3, 2):
        phrase = " ".join(words[:n]).strip()
        if len(phrase) >= 4:
            candidates.append(phrase)

    result: List[str] = []
    for keyword in candidates:
        keyword = sanitize_keyword(keyword)
        if len(keyword) >= 2 and keyword not in result:
            result.append(keyword)
    return result
