"""
Keyword extraction from legacy free-text playbook fields.
"""

import re
from typing import List, Optional, Tuple, Pattern


FALLBACK_CONDITION = 'Technical analysis signal'

# (label, pattern) in reporting order
TECHNICAL_CONDITION_PATTERNS: Tuple[Tuple[str, Pattern], ...] = (
    ('RSI indicator signal', re.compile(r'\brsi\b|relative strength')),
    ('MACD crossover', re.compile(r'macd')),
    ('Moving average alignment', re.compile(r'moving average|\bma\b|\bema\b')),
    ('Support/Resistance levels', re.compile(r'support|resistance')),
    ('Breakout pattern', re.compile(r'breakout|break out')),
    ('Trend confirmation', re.compile(r'trend')),
)


def extract_technical_conditions(text: Optional[str]) -> List[str]:
    """
    Map entry text onto canonical technical condition labels.

    Best effort: one label per keyword family found, the generic fallback
    when text is present but nothing matches, and an empty list for no text.

    Args:
        text: Legacy entry parameters

    Returns:
        List of condition labels
    """
    if not text or not text.strip():
        return []

    lowered = text.lower()
    conditions = [label for label, pattern in TECHNICAL_CONDITION_PATTERNS if pattern.search(lowered)]

    return conditions or [FALLBACK_CONDITION]
