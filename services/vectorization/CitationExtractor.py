"""Best-effort citation metadata from a library item's file name and leading text.

Every field is optional. Nothing here raises for unparseable input.
"""

import os
import re

from shared.models.chunk import Citation

# only the head of a document is scanned for author/title/year lines
LEADING_CONTENT_CHARS = 2000

AUTHOR_FROM_FILENAME = re.compile(r"by[_\s]+(.+?)(?:\.|_|-|$)", re.IGNORECASE)
AUTHOR_FROM_CONTENT = [
    re.compile(r"(?:Author|By|Written by)[:\s]+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)"),
    re.compile(r"^([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)\n", re.MULTILINE),
]
TITLE_FROM_CONTENT = [
    re.compile(r"^#\s+(.+)$", re.MULTILINE),
    re.compile(r"^Title[:\s]+(.+)$", re.MULTILINE | re.IGNORECASE),
    re.compile(r"^(.+)\n={3,}$", re.MULTILINE),
]
YEAR = re.compile(r"\b(?:19|20)\d{2}\b")


def extract_author(filename: str, content: str) -> str | None:
    match = AUTHOR_FROM_FILENAME.search(filename or "")
    if match and match.group(1).strip():
        return match.group(1).strip()
    head = (content or "")[:LEADING_CONTENT_CHARS]
    for pattern in AUTHOR_FROM_CONTENT:
        match = pattern.search(head)
        if match:
            return match.group(1).strip()
    return None


def extract_title(filename: str, content: str) -> str | None:
    head = (content or "")[:LEADING_CONTENT_CHARS]
    for pattern in TITLE_FROM_CONTENT:
        match = pattern.search(head)
        if match and match.group(1).strip():
            return match.group(1).strip()
    # fall back to the file name without extension
    stem = os.path.splitext(filename or "")[0].strip()
    return stem or None


def extract_year(text: str) -> str | None:
    match = YEAR.search(text or "")
    return match.group(0) if match else None


def extract_citation(filename: str, content: str) -> Citation:
    """Build a Citation for a library item.

    Args:
        filename (str): Original file name, e.g. "Photosynthesis_by_Jane Smith.pdf".
        content (str): Extracted document text.

    Returns:
        Citation: Possibly empty citation; source_file is the file name when given.
    """
    return Citation(
        author=extract_author(filename, content),
        title=extract_title(filename, content),
        source_file=filename or None,
        year=extract_year((content or "")[:LEADING_CONTENT_CHARS]),
    )
