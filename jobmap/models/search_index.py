# jobmap/models/search_index.py - In-memory full-text index over job records

import asyncio
import math
import re
from bisect import bisect_left
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

from .db import IndexNotReadyError, logger
from .perf import PerformanceMonitor
from .records import JobRecord

FIELD_BOOSTS: Dict[str, float] = {"title": 3.0, "company": 2.0, "categories": 1.5, "locations": 1.0}
EXACT_WEIGHT = 1.0
PREFIX_WEIGHT = 0.375
FUZZY_WEIGHT = 0.45
MAX_FUZZY = 6
BATCH_SIZE = 1000
# BM25 tuning
_K1 = 1.2
_B = 0.7

_TOKEN_RE = re.compile(r"\w+")


def tokenize(text: Optional[str]) -> List[str]:
    return _TOKEN_RE.findall((text or "").lower())


def max_edit_distance(token: str) -> int:
    """Allowed typos for a query token; longer tokens get a tighter fraction."""
    fraction = 0.1 if len(token) > 3 else 0.2
    return min(MAX_FUZZY, int(len(token) * fraction + 0.5))


def document_fields(record: JobRecord) -> Dict[str, str]:
    """Searchable text per field for one record."""
    return {
        "title": record.title or "",
        "company": record.company or "",
        "categories": " ".join(record.categories),
        "locations": " ".join(f"{loc.city or ''} {loc.address or ''}" for loc in record.locations),
    }


@dataclass(frozen=True)
class DocumentRef:
    """A ranked hit; ``id`` is ``{record id}_{position}``."""

    id: str
    score: float


@dataclass
class _IndexState:
    doc_ids: List[str] = field(default_factory=list)
    # term -> doc number -> field -> term frequency
    postings: Dict[str, Dict[int, Dict[str, int]]] = field(default_factory=lambda: defaultdict(dict))
    field_lengths: List[Dict[str, int]] = field(default_factory=list)
    avg_lengths: Dict[str, float] = field(default_factory=dict)
    sorted_terms: List[str] = field(default_factory=list)
    terms_by_length: Dict[int, List[str]] = field(default_factory=lambda: defaultdict(list))

    def add(self, doc_id: str, fields: Dict[str, str]) -> None:
        doc_no = len(self.doc_ids)
        self.doc_ids.append(doc_id)
        lengths: Dict[str, int] = {}
        for name, text in fields.items():
            tokens = tokenize(text)
            lengths[name] = len(tokens)
            for token in tokens:
                per_field = self.postings[token].setdefault(doc_no, {})
                per_field[name] = per_field.get(name, 0) + 1
        self.field_lengths.append(lengths)

    def finalize(self) -> None:
        total_docs = max(1, len(self.doc_ids))
        for name in FIELD_BOOSTS:
            total = sum(lengths.get(name, 0) for lengths in self.field_lengths)
            self.avg_lengths[name] = max(1.0, total / total_docs)
        self.postings = dict(self.postings)
        self.sorted_terms = sorted(self.postings)
        for term in self.sorted_terms:
            self.terms_by_length[len(term)].append(term)


class SearchIndex:
    """Inverted index with prefix and fuzzy term matching and field boosts.

    Every query token has to match somewhere in a document (AND semantics).
    Builds assemble a fresh state and swap it in at the end, so readers never
    see a half-built index.
    """

    def __init__(
        self,
        boosts: Optional[Dict[str, float]] = None,
        batch_size: int = BATCH_SIZE,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        self.boosts = dict(boosts or FIELD_BOOSTS)
        self.batch_size = max(1, int(batch_size))
        self.monitor = monitor or PerformanceMonitor()
        self._state: Optional[_IndexState] = None
        self._records: Optional[Sequence[JobRecord]] = None
        self.query_count = 0

    @property
    def ready(self) -> bool:
        return self._state is not None

    @property
    def size(self) -> int:
        return len(self._state.doc_ids) if self._state else 0

    def _batches(self, records: Sequence[JobRecord]) -> Iterable[List[Tuple[str, Dict[str, str]]]]:
        for start in range(0, len(records), self.batch_size):
            yield [
                (f"{record.id}_{position}", document_fields(record))
                for position, record in enumerate(records[start:start + self.batch_size], start)
            ]

    def build(self, records: Sequence[JobRecord]) -> None:
        with self.monitor.measure("index-build"):
            state = _IndexState()
            for batch in self._batches(records):
                for doc_id, fields in batch:
                    state.add(doc_id, fields)
            state.finalize()
        self._records = records
        self._state = state
        logger.info("Search index built with %d documents", len(state.doc_ids))

    async def build_chunked(self, records: Sequence[JobRecord], batch_size: Optional[int] = None) -> None:
        """Same end state as build(), yielding to the event loop between batches."""
        if batch_size:
            self.batch_size = max(1, int(batch_size))
        with self.monitor.measure("index-build-chunked"):
            state = _IndexState()
            for batch in self._batches(records):
                for doc_id, fields in batch:
                    state.add(doc_id, fields)
                await asyncio.sleep(0)
            state.finalize()
        self._records = records
        self._state = state
        logger.info("Search index built with %d documents", len(state.doc_ids))

    def rebuild(self) -> None:
        if self._records is None:
            raise IndexNotReadyError("rebuild() called before build()")
        self.build(self._records)

    def clear(self) -> None:
        self._state = None
        self._records = None

    def _candidate_terms(self, state: _IndexState, token: str) -> Dict[str, float]:
        """Map matching vocabulary terms to their match weight."""
        matches: Dict[str, float] = {}
        if token in state.postings:
            matches[token] = EXACT_WEIGHT
        start = bisect_left(state.sorted_terms, token)
        for term in state.sorted_terms[start:]:
            if not term.startswith(token):
                break
            if term != token:
                matches[term] = PREFIX_WEIGHT * len(token) / len(term)
        limit = max_edit_distance(token)
        if limit:
            for length in range(len(token) - limit, len(token) + limit + 1):
                for term in state.terms_by_length.get(length, ()):
                    if term in matches:
                        continue
                    distance = Levenshtein.distance(token, term, score_cutoff=limit)
                    if 0 < distance <= limit:
                        matches[term] = FUZZY_WEIGHT * len(token) / (len(token) + distance)
        return matches

    def _term_score(self, state: _IndexState, term: str, doc_no: int, fields: Dict[str, int]) -> float:
        postings = state.postings[term]
        total_docs = len(state.doc_ids)
        df = len(postings)
        idf = math.log(1 + (total_docs - df + 0.5) / (df + 0.5))
        score = 0.0
        for name, tf in fields.items():
            length = state.field_lengths[doc_no].get(name, 0)
            norm = tf * (_K1 + 1) / (tf + _K1 * (1 - _B + _B * length / state.avg_lengths[name]))
            score += self.boosts.get(name, 1.0) * idf * norm
        return score

    def query(self, text: str) -> List[DocumentRef]:
        """Rank documents matching every token of text."""
        state = self._state
        if state is None:
            raise IndexNotReadyError("search index has not been built")
        self.query_count += 1
        tokens = tokenize(text)
        if not tokens:
            return []
        with self.monitor.measure("search-execution"):
            combined: Optional[Dict[int, float]] = None
            for token in tokens:
                token_scores: Dict[int, float] = defaultdict(float)
                for term, weight in self._candidate_terms(state, token).items():
                    for doc_no, fields in state.postings[term].items():
                        token_scores[doc_no] += weight * self._term_score(state, term, doc_no, fields)
                if combined is None:
                    combined = dict(token_scores)
                else:
                    combined = {doc: score + token_scores[doc] for doc, score in combined.items() if doc in token_scores}
                if not combined:
                    return []
            ranked = sorted(combined.items(), key=lambda item: (-item[1], item[0]))
        return [DocumentRef(state.doc_ids[doc_no], score) for doc_no, score in ranked]
