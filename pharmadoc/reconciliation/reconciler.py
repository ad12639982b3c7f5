"""Ranking of catalog entities against names read from a document.

The reconciler only reads from the catalog; confirming a candidate is left
to the caller.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from rapidfuzz import fuzz

from pharmadoc.utils.config import ReconciliationConfig
from pharmadoc.utils.logger import get_logger

from .catalog import CatalogEntity, CatalogLookup

logger = get_logger(__name__)


class MatchKind(StrEnum):
    EXACT = "exact"
    PARTIAL = "partial"
    GENERIC = "generic"
    MANUFACTURER = "manufacturer"
    PHONE = "phone"
    FUZZY = "fuzzy"


# Lower ranks sort first.
_RANK: dict[MatchKind, int] = {
    MatchKind.EXACT: 0,
    MatchKind.PARTIAL: 1,
    MatchKind.GENERIC: 2,
    MatchKind.MANUFACTURER: 3,
    MatchKind.PHONE: 3,
    MatchKind.FUZZY: 4,
}


@dataclass(frozen=True)
class MatchCandidate:
    """A catalog entity proposed for an extracted name.

    Attributes:
        entity_id: Catalog identifier of the entity.
        name: Catalog name of the entity.
        match_kind: How the entity relates to the extracted name.
        score: rapidfuzz token-sort similarity, 0-100.
        display: Fields shown next to the candidate.
    """

    entity_id: str
    name: str
    match_kind: MatchKind
    score: float
    display: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


def _contains_either_way(a: str, b: str) -> bool:
    return bool(a and b) and (a in b or b in a)


def classify_medicine(extracted: str, entity: CatalogEntity) -> MatchKind:
    query = extracted.strip().lower()
    name = entity.name.strip().lower()

    if query == name:
        return MatchKind.EXACT
    if _contains_either_way(query, name):
        return MatchKind.PARTIAL
    if _contains_either_way(query, entity.generic_name.strip().lower()):
        return MatchKind.GENERIC
    if _contains_either_way(query, entity.manufacturer.strip().lower()):
        return MatchKind.MANUFACTURER
    return MatchKind.FUZZY


def similarity(a: str, b: str) -> float:
    return float(fuzz.token_sort_ratio(a.lower(), b.lower()))


def _candidate(entity: CatalogEntity, kind: MatchKind, score: float) -> MatchCandidate:
    display = {
        "generic_name": entity.generic_name,
        "manufacturer": entity.manufacturer,
        **entity.extra,
    }
    return MatchCandidate(
        entity_id=entity.id,
        name=entity.name,
        match_kind=kind,
        score=round(score, 1),
        display={k: v for k, v in display.items() if v not in (None, "")},
    )


def _ranked(
    scored: list[tuple[MatchKind, float, int, CatalogEntity]], limit: int
) -> list[MatchCandidate]:
    # Sort by rank, then descending score, then lookup order.
    scored.sort(key=lambda item: (_RANK[item[0]], -item[1], item[2]))
    return [_candidate(entity, kind, score) for kind, score, _, entity in scored[:limit]]


class EntityReconciler:
    """Ranks catalog candidates for extracted medicine and supplier names.

    Args:
        config: Candidate limit and retry behaviour.
    """

    def __init__(self, config: ReconciliationConfig | None = None) -> None:
        self.config = config or ReconciliationConfig()

    def _lookup(self, lookup: CatalogLookup, store_id: str, name: str) -> list[CatalogEntity]:
        found = lookup.find_by_approximate_name(store_id, name)
        if found or not self.config.retry_with_leading_word:
            return found

        words = name.split()
        if len(words) > 1 and len(words[0]) >= 3:
            logger.debug("No catalog match for %r, retrying with %r", name, words[0])
            return lookup.find_by_approximate_name(store_id, words[0])
        return found

    def reconcile(
        self, extracted_name: str, lookup: CatalogLookup, store_id: str
    ) -> list[MatchCandidate]:
        """Rank catalog entities for one extracted medicine name.

        Exact case-insensitive name matches come first, then name
        containment, then generic-name containment, then manufacturer, then
        anything else the lookup returned. Within a rank, higher similarity wins and the lookup
        order breaks remaining ties.

        Args:
            extracted_name: Name as read from the document.
            lookup: Catalog to search.
            store_id: Store whose catalog is searched.

        Returns:
            At most ``max_candidates`` candidates, best first.
        """
        if not extracted_name or not extracted_name.strip():
            return []

        entities = self._lookup(lookup, store_id, extracted_name.strip())
        scored = []
        seen: set[str] = set()
        for order, entity in enumerate(entities):
            if entity.id in seen:
                continue
            seen.add(entity.id)
            scored.append(
                (
                    classify_medicine(extracted_name, entity),
                    similarity(extracted_name, entity.name),
                    order,
                    entity,
                )
            )

        candidates = _ranked(scored, self.config.max_candidates)
        logger.debug("%d candidates for %r", len(candidates), extracted_name)
        return candidates

    def reconcile_supplier(
        self,
        name: str,
        phone: str,
        lookup: CatalogLookup,
        store_id: str,
    ) -> list[MatchCandidate]:
        """Rank catalog suppliers by exact name, partial name, then phone."""
        name = (name or "").strip()
        phone = (phone or "").strip()

        entities: list[CatalogEntity] = []
        if name:
            entities.extend(self._lookup(lookup, store_id, name))
        if phone:
            entities.extend(lookup.find_by_approximate_name(store_id, phone))

        scored = []
        seen: set[str] = set()
        for order, entity in enumerate(entities):
            if entity.id in seen:
                continue
            kind = self._classify_supplier(name, phone, entity)
            if kind is None:
                continue
            seen.add(entity.id)
            scored.append((kind, similarity(name, entity.name) if name else 0.0, order, entity))

        return _ranked(scored, self.config.max_candidates)

    @staticmethod
    def _classify_supplier(name: str, phone: str, entity: CatalogEntity) -> MatchKind | None:
        query = name.lower()
        entity_name = entity.name.strip().lower()
        if query and query == entity_name:
            return MatchKind.EXACT
        if _contains_either_way(query, entity_name):
            return MatchKind.PARTIAL
        if phone and entity.phone and phone in entity.phone:
            return MatchKind.PHONE
        if query:
            return MatchKind.FUZZY
        return None
