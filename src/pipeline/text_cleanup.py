# src/pipeline/text_cleanup.py — v1
"""Cleanup of LLM-produced summaries before they reach a changelog or chat.

Summaries often arrive JSON-quoted (``"Fixed bug\\nAdded feature"``):
wrapped in double quotes and with escape sequences left literal. This is
a narrow cosmetic fix, not JSON decoding.
"""

from __future__ import annotations


def clean_summary(summary: str) -> str:
    """Strip wrapping double quotes and unescape literal ``\\n`` / ``\\t``.

    Quotes are stripped from both ends until none remain, so applying the
    function twice gives the same result as applying it once.

    >>> clean_summary('"Fixed bug\\\\nAdded feature"')
    'Fixed bug\\nAdded feature'
    """
    return summary.strip('"').replace("\\n", "\n").replace("\\t", "\t")
