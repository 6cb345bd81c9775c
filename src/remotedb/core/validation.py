"""
Query validation for standard-tier callers.

This is a denylist, not a SQL parser. It rejects obviously destructive
statements and comment tricks; it does not make arbitrary SQL safe.
Privileged callers are never validated.
"""

import re
from typing import List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

DENYLIST: List[Tuple[str, "re.Pattern[str]"]] = [
    ("destructive_statement", re.compile(r";\s*(DROP|ALTER|CREATE|TRUNCATE)", re.IGNORECASE)),
    ("line_comment", re.compile(r"--")),
    ("block_comment", re.compile(r"/\*.*?\*/")),
]


def find_violation(query: str, max_length: int) -> Optional[str]:
    """
    Return the name of the first rule ``query`` breaks, or None.

    Length is measured in UTF-8 bytes; a query exactly at the limit passes.
    """
    if len(query.encode("utf-8")) > max_length:
        return "too_long"

    for name, pattern in DENYLIST:
        if pattern.search(query):
            return name

    return None


def validate_query(query: str, max_length: int) -> bool:
    """True if the query passes every standard-tier check."""
    violation = find_violation(query, max_length)
    if violation is not None:
        logger.debug("Query rejected by validator", rule=violation, query_length=len(query))
        return False
    return True
