# =============================================================================
# Document Store — In-Memory Index & Retrieval
# =============================================================================
#
# Holds the local research corpus (regulations, company profiles, research
# notes, educational material, market updates) and answers filtered text
# queries over it.
#
# STORAGE:
#   documents     id → FinancialDocument (primary map)
#   by_category   category → [id, ...]
#   by_tag        tag      → [id, ...]
#   by_language   language → [id, ...]
#   Every id in the primary map is present in all three indexes.
#   Documents are append-only: no update, no delete.
#
# SEARCH PIPELINE:
#   1. filter candidates by category / tags (any) / language
#   2. with a search term, keep docs whose content, title or a tag
#      contains it (case-insensitive)
#   3. score:  (1 + matches / len(content))  ×  (1 + 1 / (1 + age_days))
#   4. sort by score descending, cut to `limit` (None or 0 → all)
#
# DESIGN DECISION: Raw density scoring, no IDF and no normalisation.
# Scores are comparable only within a single query's result set; this
# is adequate for a corpus of a few hundred local files.
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

logger = logging.getLogger(__name__)

DOCUMENT_CATEGORIES = ("regulation", "profile", "research", "educational", "market-update")
DOCUMENT_LANGUAGES = ("en", "ar")

SEGMENT_CONTEXT_CHARS = 50
_SECONDS_PER_DAY = 86400.0


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class DocumentMetadata:
    id: str
    title: str
    category: str                      # one of DOCUMENT_CATEGORIES
    tags: list[str] = field(default_factory=list)
    language: str = "en"               # "en" or "ar"
    last_updated: datetime = field(default_factory=lambda: datetime.now(UTC))
    source: str = "local"
    version: str = "1.0"


@dataclass
class FinancialDocument:
    metadata: DocumentMetadata
    content: str
    path: str = ""


@dataclass
class DocumentQuery:
    """Search parameters. Every field is optional."""

    search_term: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    language: str | None = None
    limit: int | None = None


@dataclass
class DocumentSearchResult:
    document: FinancialDocument
    relevance_score: float
    matched_segments: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class DocumentStore:
    """
    Documents keyed by id, with category, tag and language indexes.
    Re-adding an id replaces the document and its index entries.

    The clock is injectable so that recency scoring is reproducible
    in tests.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._documents: dict[str, FinancialDocument] = {}
        self.by_category: dict[str, list[str]] = {}
        self.by_tag: dict[str, list[str]] = {}
        self.by_language: dict[str, list[str]] = {}

    def __len__(self) -> int:
        return len(self._documents)

    # -- Mutation ------------------------------------------------------------

    def add_document(self, document: FinancialDocument) -> None:
        """Insert into the primary map and append the id to every index."""
        metadata = document.metadata
        previous = self._documents.get(metadata.id)
        if previous is not None:
            logger.warning("Document id %s already stored; replacing content", metadata.id)
            self._unindex(previous.metadata)
        self._documents[metadata.id] = document

        _append_unique(self.by_category.setdefault(metadata.category, []), metadata.id)
        for tag in metadata.tags:
            _append_unique(self.by_tag.setdefault(tag, []), metadata.id)
        _append_unique(self.by_language.setdefault(metadata.language, []), metadata.id)

        logger.debug(
            "Indexed document %s (category=%s, tags=%d, language=%s)",
            metadata.id, metadata.category, len(metadata.tags), metadata.language,
        )

    # -- Queries -------------------------------------------------------------

    def search_documents(self, query: DocumentQuery) -> list[DocumentSearchResult]:
        """Filter, text-match, score and rank documents for one query."""
        candidates = self._filter(query)
        term = query.search_term or None

        if term:
            needle = term.lower()
            candidates = [doc for doc in candidates if _contains(doc, needle)]

        now = self._clock()
        results = [
            DocumentSearchResult(
                document=doc,
                relevance_score=self._relevance(doc, term, now),
                matched_segments=find_matched_segments(doc.content, term),
            )
            for doc in candidates
        ]
        results.sort(key=lambda r: r.relevance_score, reverse=True)

        if query.limit:
            results = results[: query.limit]
        return results

    def get_document(self, document_id: str) -> FinancialDocument | None:
        return self._documents.get(document_id)

    def get_documents_by_category(self, category: str) -> list[FinancialDocument]:
        return self._resolve(self.by_category.get(category, []))

    def get_documents_by_tag(self, tag: str) -> list[FinancialDocument]:
        return self._resolve(self.by_tag.get(tag, []))

    def get_documents_by_language(self, language: str) -> list[FinancialDocument]:
        return self._resolve(self.by_language.get(language, []))

    def all_documents(self) -> list[FinancialDocument]:
        return list(self._documents.values())

    # -- Internals -----------------------------------------------------------

    def _filter(self, query: DocumentQuery) -> list[FinancialDocument]:
        ids: list[str] = list(self._documents)

        if query.category:
            allowed = set(self.by_category.get(query.category, []))
            ids = [i for i in ids if i in allowed]
        if query.tags:
            allowed = {i for tag in query.tags for i in self.by_tag.get(tag, [])}
            ids = [i for i in ids if i in allowed]
        if query.language:
            allowed = set(self.by_language.get(query.language, []))
            ids = [i for i in ids if i in allowed]

        documents = [self._documents[i] for i in ids]
        # Indexes are append-only; re-check fields in case an id was replaced.
        return [
            doc for doc in documents
            if (not query.category or doc.metadata.category == query.category)
            and (not query.tags or any(t in doc.metadata.tags for t in query.tags))
            and (not query.language or doc.metadata.language == query.language)
        ]

    def _relevance(self, document: FinancialDocument, term: str | None, now: datetime) -> float:
        score = 1.0
        if term:
            score *= 1 + term_density(document.content, term)

        age_days = (now - document.metadata.last_updated).total_seconds() / _SECONDS_PER_DAY
        score *= 1 + 1 / (1 + max(0.0, age_days))
        return score

    def _unindex(self, metadata: DocumentMetadata) -> None:
        _remove_id(self.by_category, metadata.category, metadata.id)
        for tag in metadata.tags:
            _remove_id(self.by_tag, tag, metadata.id)
        _remove_id(self.by_language, metadata.language, metadata.id)

    def _resolve(self, ids: list[str]) -> list[FinancialDocument]:
        return [self._documents[i] for i in ids if i in self._documents]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def term_density(text: str, term: str) -> float:
    """Case-insensitive occurrences of `term` divided by the text length."""
    if not text:
        return 0.0
    matches = re.findall(re.escape(term), text, flags=re.IGNORECASE)
    return len(matches) / len(text)


def find_matched_segments(text: str, term: str | None) -> list[str]:
    """Every occurrence of `term` with up to 50 characters either side."""
    if not term:
        return []
    pattern = (
        r".{0,%d}" % SEGMENT_CONTEXT_CHARS
        + re.escape(term)
        + r".{0,%d}" % SEGMENT_CONTEXT_CHARS
    )
    return [m.group(0) for m in re.finditer(pattern, text, flags=re.IGNORECASE)]


def summarize_document(content: str, sentences: int = 2) -> str:
    """First few sentences of a document, used when nothing matched."""
    parts = [p.strip() for p in re.split(r"[.!?]+", content) if p.strip()]
    if not parts:
        return ""
    return ". ".join(parts[:sentences]) + "."


def _contains(document: FinancialDocument, needle: str) -> bool:
    if needle in document.content.lower():
        return True
    if needle in document.metadata.title.lower():
        return True
    return any(needle in tag.lower() for tag in document.metadata.tags)


def _append_unique(ids: list[str], document_id: str) -> None:
    if document_id not in ids:
        ids.append(document_id)


def _remove_id(index: dict[str, list[str]], key: str, document_id: str) -> None:
    ids = index.get(key)
    if ids is None or document_id not in ids:
        return
    ids.remove(document_id)
    if not ids:
        del index[key]
