# Stage 3: Math Region Classification
"""
Heuristic math-likeness scoring for merged text regions.
Each distinct feature class found in the text adds 0.1 to the score
(capped at 1.0). Regions scoring at or above the threshold become
MathBlocks; blocks that look like OCR misreads are flagged suspicious.
"""

import logging
import re
from typing import List, Sequence

from data_models import MathBlock, MergedRegion

logger = logging.getLogger(__name__)

FEATURE_WEIGHT = 0.1

MATH_FEATURES = {
    'comparison': re.compile(r'[=≠≈≤≥<>]'),
    'arithmetic': re.compile(r'[+\-×÷*/]'),
    'digits': re.compile(r'\d+'),
    'bracket_pair': re.compile(r'\([^()]*\)|\[[^\[\]]*\]|\{[^{}]*\}'),
    'absolute_value': re.compile(r'\|[^|]*\|'),
    'greek': re.compile(r'[√∑∫∏∂∆∇πθλαβγδεζηικμνξρστυφχψωΓΔΘΛΞΠΣΦΨΩ]'),
    'exponent_subscript': re.compile(r'\w\s*[\^_]\s*[\w{(]|[⁰¹²³⁴⁵⁶⁷⁸⁹₀₁₂₃₄₅₆₇₈₉]'),
    'function': re.compile(r'\b(sin|cos|tan|sec|csc|cot|log|ln|exp|sqrt|abs|max|min|lim|sum|prod|int)\b', re.IGNORECASE),
    'constant': re.compile(r'∞|\b(infinity|inf|pi|e|phi|gamma|alpha|beta|theta|lambda|mu|sigma|omega)\b'),
    'logic': re.compile(r'[∀∃⇒⇔∧∨¬]|\b(and|or|not|implies|iff|forall|exists)\b', re.IGNORECASE),
    'instruction': re.compile(
        r'\b(if|then|else|when|where|given|let|assume|suppose|prove|show|find|solve|calculate|'
        r'simplify|evaluate|expand|factorise|factorize|differentiate|integrate)\b',
        re.IGNORECASE
    ),
}

# Prose made only of these words is never math
COMMON_ENGLISH_WORDS = frozenset([
    'the', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of', 'with', 'by',
    'question', 'answer', 'find', 'calculate', 'solve', 'show', 'prove', 'given',
])

_ALPHA_PHRASE = re.compile(r'^[a-zA-Z\s]+$')
_OPERATOR_CHARS = re.compile(r'[+\-×÷*/=]')
_DIGIT = re.compile(r'\d')


def is_common_english(text: str) -> bool:
    """Purely alphabetic phrase longer than 3 chars made only of stoplist words"""
    stripped = (text or '').strip()
    if len(stripped) <= 3 or not _ALPHA_PHRASE.match(stripped):
        return False
    return all(word in COMMON_ENGLISH_WORDS for word in stripped.lower().split())


def matched_features(text: str) -> List[str]:
    """Names of the feature classes present in text"""
    return [name for name, pattern in MATH_FEATURES.items() if pattern.search(text or '')]


def score_math_likeness(text: str) -> float:
    """Score in [0, 1]: 0.1 per distinct matched feature class, capped at 1"""
    if not (text or '').strip():
        return 0.0
    if is_common_english(text):
        return 0.0
    return round(min(1.0, len(matched_features(text)) * FEATURE_WEIGHT), 4)


def is_suspicious(text: str) -> bool:
    """
    Likely OCR artifact: a lone '|' (misread absolute-value bar), or more
    than two operator characters with no digits (symbolic noise).
    """
    text = text or ''
    if text.count('|') == 1:
        return True
    return len(_OPERATOR_CHARS.findall(text)) > 2 and not _DIGIT.search(text)


class MathRegionClassifier:
    """Stage 3: pick the merged regions that look mathematical"""

    def __init__(self, threshold: float = 0.35):
        self.threshold = threshold

    def classify(self, regions: Sequence[MergedRegion]) -> List[MathBlock]:
        blocks = []
        for region in regions:
            score = score_math_likeness(region.text)
            # A region without any math feature never qualifies, even at threshold 0
            if score <= 0 or score < self.threshold:
                continue
            blocks.append(MathBlock.from_region(region, score, is_suspicious(region.text)))

        suspicious = sum(1 for b in blocks if b.suspicious)
        logger.info(f"[Stage 3] {len(blocks)}/{len(regions)} regions classified as math ({suspicious} suspicious)")
        return blocks
