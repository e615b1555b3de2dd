"""Query evaluation and TF-IDF ranking."""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

from docmonitor.errors import QuerySyntaxError
from docmonitor.index.query import (
    BooleanQuery,
    Clause,
    Occur,
    PrefixQuery,
    Query,
    parse_query,
)
from docmonitor.index.storage import FIELDS, TEXT_FIELDS, IndexReader, IndexStore
from docmonitor.models import ScoredResult, parse_modified

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 20

Scores = Dict[int, float]


def idf(document_frequency: int, document_count: int) -> float:
    return 1.0 + math.log(document_count / (document_frequency + 1))


def length_norm(length: int) -> float:
    return 1.0 / math.sqrt(length) if length > 0 else 1.0


def _phrase_frequency(positions: Sequence[List[int]]) -> int:
    """Count start positions where every term follows its predecessor."""
    following = [set(term_positions) for term_positions in positions[1:]]
    return sum(
        1
        for start in positions[0]
        if all(start + offset + 1 in term_set for offset, term_set in enumerate(following))
    )


class QueryEvaluator:
    """Scores one parsed query against a reader snapshot.

    ``evaluate`` returns ``None`` for a clause that analyses to nothing (for
    example a stop word); such clauses take no part in coordination.
    """

    def __init__(self, reader: IndexReader, default_fields: Sequence[str]) -> None:
        self.reader = reader
        self.default_fields = tuple(default_fields)
        self.document_count = max(reader.document_count, 1)

    def evaluate(self, query: Query) -> Optional[Scores]:
        if isinstance(query, BooleanQuery):
            return self._boolean(query.clauses)
        if query.field is None:
            expanded = tuple(
                Clause(Occur.SHOULD, type(query)(field, *self._payload(query)))
                for field in self.default_fields
            )
            return self._boolean(expanded)
        if isinstance(query, PrefixQuery):
            return self._prefix(query.field, query.prefix)
        tokens = self.reader.analyze(query.field, query.text)
        if not tokens:
            return None
        if len(tokens) == 1:
            return self._term(query.field, tokens[0])
        return self._phrase(query.field, tokens)

    @staticmethod
    def _payload(query: Query) -> tuple:
        if isinstance(query, PrefixQuery):
            return (query.prefix,)
        return (query.text,)

    def _term(self, field: str, term: str) -> Scores:
        postings = self.reader.postings(field, term)
        if not postings:
            return {}
        weight = idf(len(postings), self.document_count) ** 2
        lengths = self.reader.field_lengths(field, (doc_id for doc_id, _, _ in postings))
        return {
            doc_id: math.sqrt(frequency) * weight * length_norm(lengths.get(doc_id, 0))
            for doc_id, frequency, _ in postings
        }

    def _phrase(self, field: str, terms: List[str]) -> Scores:
        per_term = []
        weight = 0.0
        for term in terms:
            postings = {doc_id: positions for doc_id, _, positions in self.reader.postings(field, term)}
            if not postings:
                return {}
            weight += idf(len(postings), self.document_count)
            per_term.append(postings)

        candidates = set(per_term[0]).intersection(*per_term[1:])
        frequencies = {
            doc_id: _phrase_frequency([postings[doc_id] for postings in per_term])
            for doc_id in candidates
        }
        frequencies = {doc_id: freq for doc_id, freq in frequencies.items() if freq}
        lengths = self.reader.field_lengths(field, frequencies)
        return {
            doc_id: math.sqrt(freq) * weight**2 * length_norm(lengths.get(doc_id, 0))
            for doc_id, freq in frequencies.items()
        }

    def _prefix(self, field: str, prefix: str) -> Optional[Scores]:
        if field in TEXT_FIELDS or field == "extension":
            prefix = prefix.lower()
        if not prefix:
            return None
        scores: Scores = {}
        for term in self.reader.terms_with_prefix(field, prefix):
            for doc_id, score in self._term(field, term).items():
                scores[doc_id] = max(score, scores.get(doc_id, 0.0))
        return scores

    def _boolean(self, clauses: Sequence[Clause]) -> Optional[Scores]:
        evaluated = [(clause.occur, self.evaluate(clause.query)) for clause in clauses]
        evaluated = [(occur, scores) for occur, scores in evaluated if scores is not None]
        required = [scores for occur, scores in evaluated if occur is Occur.MUST]
        optional = [scores for occur, scores in evaluated if occur is Occur.SHOULD]
        prohibited = [scores for occur, scores in evaluated if occur is Occur.MUST_NOT]
        if not required and not optional:
            return None if not evaluated else {}

        if required:
            candidates = set(required[0]).intersection(*required[1:])
        else:
            candidates = set().union(*optional)
        for scores in prohibited:
            candidates.difference_update(scores)

        total = len(required) + len(optional)
        combined: Scores = {}
        for doc_id in candidates:
            score = sum(scores[doc_id] for scores in required)
            matched = len(required)
            for scores in optional:
                if doc_id in scores:
                    score += scores[doc_id]
                    matched += 1
            combined[doc_id] = score * matched / total
        return combined


class Searcher:
    """High-level API to query the index store.

    Every call opens a fresh reader, so results reflect the latest commit.
    """

    def __init__(self, store: IndexStore, *, default_fields: Sequence[str] = TEXT_FIELDS) -> None:
        self.store = store
        self.default_fields = tuple(default_fields)

    def search(
        self,
        query_text: str,
        *,
        fields: Optional[Sequence[str]] = None,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> List[ScoredResult]:
        if max_results < 1:
            raise ValueError("max_results must be positive")
        fields = tuple(fields) if fields else self.default_fields
        unknown = [field for field in fields if field not in FIELDS]
        if unknown:
            raise QuerySyntaxError(f"Unknown default field(s): {', '.join(unknown)}")

        query = parse_query(query_text)
        with self.store.open_reader() as reader:
            scores = QueryEvaluator(reader, fields).evaluate(query) or {}
            LOGGER.debug("Query %r matched %d documents", query_text, len(scores))
            return self._top_results(reader, scores, max_results)

    @staticmethod
    def _top_results(reader: IndexReader, scores: Scores, max_results: int) -> List[ScoredResult]:
        if not scores:
            return []
        doc_ids = np.fromiter(scores.keys(), dtype=np.int64, count=len(scores))
        values = np.fromiter(scores.values(), dtype=np.float64, count=len(scores))

        if max_results < len(values):
            # Keep every document tied with the cut-off score so tie-breaks stay deterministic.
            threshold = np.partition(values, -max_results)[-max_results]
            selected = doc_ids[values >= threshold]
        else:
            selected = doc_ids

        summaries = reader.summaries(int(doc_id) for doc_id in selected)
        results = [
            ScoredResult(
                path=Path(row["path"]),
                filename=row["filename"],
                extension=row["extension"],
                modified_at=parse_modified(row["modified"]),
                score=float(scores[doc_id]),
            )
            for doc_id, row in summaries.items()
        ]
        results.sort(key=lambda result: str(result.path))
        results.sort(key=lambda result: (result.score, result.modified_at), reverse=True)
        return results[:max_results]
