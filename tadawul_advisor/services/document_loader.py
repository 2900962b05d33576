# =============================================================================
# Document Loader — Local Files into the Document Store
# =============================================================================
#
# Reads .md / .txt files from a directory and indexes them. Metadata is
# inferred from the filename:
#   category  "regulation" / "profile" / "research" / "educational" in the
#             name, otherwise "market-update"
#   tags      the category plus every filename word longer than 3 chars
#   language  "ar" when the name contains "_ar", otherwise "en"
# =============================================================================

from __future__ import annotations

import logging
import re
import uuid
from datetime import UTC, datetime
from pathlib import Path

from tadawul_advisor.services.document_store import (
    DocumentMetadata,
    DocumentStore,
    FinancialDocument,
)

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".md", ".txt")
_CATEGORY_KEYWORDS = ("regulation", "profile", "research", "educational")


def determine_category(filename: str) -> str:
    name = filename.lower()
    for keyword in _CATEGORY_KEYWORDS:
        if keyword in name:
            return keyword
    return "market-update"


def generate_tags(filename: str, category: str) -> list[str]:
    tags: dict[str, None] = {category: None}
    for word in re.sub(r"[^a-z0-9\s]", " ", filename.lower()).split():
        if len(word) > 3:
            tags[word] = None
    return list(tags)


def determine_language(filename: str) -> str:
    return "ar" if "_ar" in filename.lower() else "en"


def build_document(
    filename: str,
    content: str,
    last_updated: datetime | None = None,
    path: str | None = None,
) -> FinancialDocument:
    """Create a document with metadata inferred from its filename."""
    category = determine_category(filename)
    metadata = DocumentMetadata(
        id=f"doc_{uuid.uuid4().hex[:12]}",
        title=Path(filename).stem,
        category=category,
        tags=generate_tags(filename, category),
        language=determine_language(filename),
        last_updated=last_updated or datetime.now(UTC),
        source="local",
        version="1.0",
    )
    return FinancialDocument(metadata=metadata, content=content, path=path or filename)


def load_directory(store: DocumentStore, directory: str | Path) -> int:
    """
    Index every supported file under `directory`.

    A missing directory is not an error; it simply loads nothing.
    Unreadable files are skipped with a warning.

    Returns:
        The number of documents added.
    """
    root = Path(directory)
    if not root.is_dir():
        logger.info("Document directory %s not found; corpus is empty", root)
        return 0

    loaded = 0
    for file_path in sorted(root.rglob("*")):
        if file_path.suffix.lower() not in SUPPORTED_SUFFIXES or not file_path.is_file():
            continue
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping %s: %s", file_path, e)
            continue

        modified = datetime.fromtimestamp(file_path.stat().st_mtime, tz=UTC)
        store.add_document(build_document(
            file_path.name, content, last_updated=modified, path=str(file_path),
        ))
        loaded += 1

    logger.info("Loaded %d documents from %s", loaded, root)
    return loaded
