"""Read-only catalog lookups used to reconcile extracted names."""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import yaml

from pharmadoc.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CatalogEntity:
    """A medicine or supplier known to a store.

    ``extra`` holds display-only fields such as category or stock level.
    """

    id: str
    name: str
    generic_name: str = ""
    manufacturer: str = ""
    phone: str = ""
    extra: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


class CatalogLookup(Protocol):
    """Store-scoped approximate name search over catalog entities."""

    def find_by_approximate_name(self, store_id: str, query: str) -> list[CatalogEntity]:
        ...


class InMemoryCatalog:
    """Catalog backed by per-store entity lists.

    Lookups are case-insensitive substring matches over name, generic name,
    manufacturer and phone, with the query regex-escaped. Results keep
    insertion order.

    Args:
        entities: Mapping of store id to its entities.
        limit: Maximum number of entities a lookup returns.
    """

    def __init__(
        self,
        entities: dict[str, list[CatalogEntity]] | None = None,
        limit: int = 20,
    ) -> None:
        self._entities = {store: list(items) for store, items in (entities or {}).items()}
        self.limit = limit

    @classmethod
    def from_yaml(cls, path: Path | str) -> "InMemoryCatalog":
        """Load a catalog from YAML of the form ``{stores: {id: [entity, ...]}}``.

        A missing file yields an empty catalog.
        """
        path = Path(path)
        if not path.exists():
            logger.info("No catalog file found at %s, using an empty catalog", path)
            return cls()

        with open(path) as f:
            raw = yaml.safe_load(f) or {}

        entities: dict[str, list[CatalogEntity]] = {}
        for store_id, items in (raw.get("stores") or {}).items():
            entities[str(store_id)] = [_entity_from_dict(item) for item in items or []]

        logger.info(
            "Loaded catalog with %d stores from %s", len(entities), path
        )
        return cls(entities)

    def entities(self, store_id: str) -> list[CatalogEntity]:
        return list(self._entities.get(store_id, []))

    def find_by_approximate_name(self, store_id: str, query: str) -> list[CatalogEntity]:
        query = query.strip()
        if not query:
            return []

        pattern = re.compile(re.escape(query), re.IGNORECASE)
        found = [
            entity
            for entity in self._entities.get(store_id, [])
            if pattern.search(entity.name)
            or pattern.search(entity.generic_name)
            or pattern.search(entity.manufacturer)
            or (entity.phone and pattern.search(entity.phone))
        ]
        return found[: self.limit]


def _entity_from_dict(item: dict[str, Any]) -> CatalogEntity:
    known = {"id", "name", "generic_name", "manufacturer", "phone"}
    return CatalogEntity(
        id=str(item["id"]),
        name=item["name"],
        generic_name=item.get("generic_name") or "",
        manufacturer=item.get("manufacturer") or "",
        phone=str(item.get("phone") or ""),
        extra={k: v for k, v in item.items() if k not in known},
    )
