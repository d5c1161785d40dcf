"""
Text helpers for embedding, reranking and metadata enrichment.
"""

import re
import unicodedata
from typing import Dict, List

STOP_WORDS = frozenset([
    'the', 'is', 'at', 'which', 'on', 'and', 'a', 'to', 'are', 'as', 'was',
    'will', 'an', 'be', 'by', 'this', 'that', 'it', 'with', 'for', 'of',
    'in', 'from', 'or', 'but', 'not', 'have', 'has', 'had', 'can', 'could',
    'would', 'should', 'may', 'might', 'must', 'shall', 'do', 'does',
    'did', 'get', 'got', 'go', 'went', 'come', 'came', 'see', 'saw', 'say',
    'said', 'tell', 'told', 'know', 'knew', 'think', 'thought', 'take', 'took',
])

_PUNCTUATION = re.compile(r"[^\w\s]")

_LANGUAGE_PATTERNS = {
    'en': re.compile(r"\b(the|and|is|are|of|to|for|with)\b"),
    'es': re.compile(r"\b(el|la|los|las|de|que|para|con|una|por)\b"),
    'fr': re.compile(r"\b(le|la|les|des|une|pour|avec|est|sur)\b"),
    'de': re.compile(r"\b(der|die|das|und|ist|mit|ein|eine|für)\b"),
    'it': re.compile(r"\b(il|lo|la|gli|le|che|per|con|una)\b"),
    'pt': re.compile(r"\b(o|a|os|as|de|que|para|com|uma|por)\b"),
    'hi': re.compile(r"[ऀ-ॿ]"),
    'zh': re.compile(r"[一-鿿]"),
    'ja': re.compile(r"[぀-ヿ]"),
    'ar': re.compile(r"[؀-ۿ]"),
}

TECH_TERMS = ['ai', 'machine', 'learning', 'algorithm', 'data', 'neural', 'network', 'api', 'database', 'vector']


def tokenize(text: str) -> List[str]:
    """Lowercase, strip punctuation, split on whitespace, drop short tokens and stop words."""
    if not isinstance(text, str):
        return []
    words = _PUNCTUATION.sub(" ", text.lower()).split()
    return [w for w in words if len(w) > 2 and w not in STOP_WORDS]


def normalize_text(text: str) -> str:
    """Lowercase and strip diacritics."""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.lower()


def detect_language(text: str) -> str:
    """Guess the language of text from stop-word and script counts."""
    if not text:
        return "unknown"

    sample = text[:400].lower()
    counts: Dict[str, int] = {
        lang: len(pattern.findall(sample)) for lang, pattern in _LANGUAGE_PATTERNS.items()
    }
    # max() keeps the first language on ties, like a stable sort
    lang = max(counts, key=lambda k: counts[k])
    if counts[lang] == 0:
        return "unknown"
    return lang


def extract_semantic_tags(text: str) -> List[str]:
    """Tag technology terms and a coarse document type."""
    tags = []
    words = text.lower().split()

    for term in TECH_TERMS:
        if any(term in word for word in words):
            tags.append(f"tech:{term}")

    if "function" in text or "class" in text or "import" in text:
        tags.append("type:code")
    elif "http" in text or "www" in text:
        tags.append("type:url")
    elif len(text) > 500:
        tags.append("type:document")
    else:
        tags.append("type:text")

    return tags


def lexical_overlap(query: str, text: str) -> float:
    """Fraction of query words substring-matched against words of text."""
    if not text or not query:
        return 0.0

    query_words = query.lower().split()
    text_words = text.lower().split()
    if not query_words:
        return 0.0

    common = 0
    for q_word in query_words:
        if any(q_word in t_word or t_word in q_word for t_word in text_words):
            common += 1

    return common / len(query_words)


def jaccard_similarity(text1: str, text2: str) -> float:
    """Word-set Jaccard similarity of two texts."""
    words1 = set(text1.lower().split())
    words2 = set(text2.lower().split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)
