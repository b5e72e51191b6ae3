"""
Accessory catalog: loading, mountability classification, search and id resolution.

The catalog is read-only once built. Reloading builds a fresh catalog and swaps
it into a :class:`CatalogHolder` in one assignment, so concurrent readers only
ever see a complete index.
"""
from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Iterable, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import CatalogLoadError
from .types import AccessoryItem, FilteredAccessory, ResolutionResult, SearchResult

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 100
MAX_SEARCH_LIMIT = 1000


def _norm(value: object) -> str:
    return str(value or "").lower().strip()


class MountabilityPolicy(BaseModel):
    """Editorial exclusion lists deciding which accessories may be rendered on the bike."""

    model_config = ConfigDict(frozen=True)

    disallowed_product_types: frozenset[str] = Field(default_factory=frozenset)
    disallowed_text_hints: tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("disallowed_product_types", mode="before")
    @classmethod
    def _normalize_types(cls, value: Iterable[str]) -> frozenset[str]:
        return frozenset(_norm(item) for item in value if _norm(item))

    @field_validator("disallowed_text_hints", mode="before")
    @classmethod
    def _normalize_hints(cls, value: Iterable[str]) -> tuple[str, ...]:
        return tuple(_norm(item) for item in value if _norm(item))

    @classmethod
    def default(cls) -> "MountabilityPolicy":
        raw = resources.files("bike_render").joinpath("data/mountability_policy.json").read_text("utf-8")
        return cls.model_validate(json.loads(raw))

    @classmethod
    def from_file(cls, path: str | Path) -> "MountabilityPolicy":
        with Path(path).open("r", encoding="utf-8") as handle:
            return cls.model_validate(json.load(handle))

    def disallowed_types(self, item: AccessoryItem) -> list[str]:
        return sorted(t for t in item.product_types if t in self.disallowed_product_types)

    def has_disallowed_text(self, item: AccessoryItem) -> bool:
        text = f"{item.name} {item.description} {item.category}".lower()
        return any(hint in text for hint in self.disallowed_text_hints)

    def is_mountable(self, item: AccessoryItem) -> bool:
        return not (self.disallowed_types(item) or self.has_disallowed_text(item))

    def exclusion_reason(self, item: AccessoryItem) -> str:
        types = self.disallowed_types(item)
        if types:
            return f"excluded by product_type ({', '.join(types)})"
        return "excluded by text hint (non-mountable)"


class AccessoryRecord(BaseModel):
    """Raw dataset record; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str | None = None
    title: str | None = None
    category: str | None = None
    description: str | None = None
    keywords: dict[str, Any] | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def to_item(self) -> AccessoryItem:
        product_type = (self.keywords or {}).get("product_type")
        types = product_type.keys() if isinstance(product_type, dict) else ()
        return AccessoryItem(
            id=self.id.strip(),
            name=self.name or self.title or "",
            category=self.category or "",
            description=self.description or "",
            product_types=frozenset(_norm(t) for t in types if _norm(t)),
        )


class AccessoryCatalog:
    """Read-only accessory index."""

    def __init__(self, items: Sequence[AccessoryItem] = (), policy: MountabilityPolicy | None = None) -> None:
        self._items: tuple[AccessoryItem, ...] = tuple(items)
        self._by_id: dict[str, AccessoryItem] = {item.id: item for item in self._items}
        self._policy = policy or MountabilityPolicy.default()

    @classmethod
    def load(cls, path: str | Path, policy: MountabilityPolicy | None = None) -> "AccessoryCatalog":
        """Parse the JSON accessory dataset at *path*.

        Raises
        ------
        CatalogLoadError
            If the file is unreadable, not a JSON array, or holds an invalid record.
        """
        dataset_path = Path(path)
        try:
            raw = json.loads(dataset_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise CatalogLoadError(f"Failed to read accessory dataset {dataset_path}: {exc}") from exc

        if not isinstance(raw, list):
            raise CatalogLoadError(
                f"Accessory dataset {dataset_path} must be a JSON array, got {type(raw).__name__}"
            )

        items: list[AccessoryItem] = []
        for index, record in enumerate(raw):
            try:
                items.append(AccessoryRecord.model_validate(record).to_item())
            except ValidationError as exc:
                raise CatalogLoadError(
                    f"Invalid accessory record #{index} in {dataset_path}: {exc.errors()[0]['msg']}"
                ) from exc

        return cls(items, policy)

    @property
    def policy(self) -> MountabilityPolicy:
        return self._policy

    def __len__(self) -> int:
        return len(self._items)

    def get(self, accessory_id: str) -> AccessoryItem | None:
        return self._by_id.get(str(accessory_id).strip())

    def is_mountable(self, item: AccessoryItem) -> bool:
        return self._policy.is_mountable(item)

    def search(
        self,
        query: str = "",
        limit: int | None = DEFAULT_SEARCH_LIMIT,
        mountable_only: bool = False,
    ) -> SearchResult:
        """Substring search over name, description and category."""
        needle = _norm(query)
        clamped = max(1, min(MAX_SEARCH_LIMIT, int(limit or DEFAULT_SEARCH_LIMIT)))

        matches: Iterable[AccessoryItem] = self._items
        if needle:
            matches = (
                item
                for item in matches
                if needle in f"{item.name} {item.description} {item.category}".lower()
            )
        if mountable_only:
            matches = (item for item in matches if self._policy.is_mountable(item))

        filtered = list(matches)
        return SearchResult(total=len(filtered), items=[item.summary() for item in filtered[:clamped]])

    def resolve_from_csv(self, ids_csv: str | None, mountable_only: bool = True) -> ResolutionResult:
        """Resolve a comma-separated id list into selected, missing and filtered-out buckets.

        Every occurrence is resolved independently, so a repeated id shows up once per
        occurrence in its bucket.
        """
        ids = [token.strip() for token in str(ids_csv or "").split(",")]
        result = ResolutionResult()

        for accessory_id in ids:
            if not accessory_id:
                continue
            item = self._by_id.get(accessory_id)
            if item is None:
                result.missing.append(accessory_id)
                continue
            if mountable_only and not self._policy.is_mountable(item):
                result.filtered_out.append(
                    FilteredAccessory(id=accessory_id, reason=self._policy.exclusion_reason(item))
                )
                continue
            result.selected.append(item.summary())

        return result


class CatalogHolder:
    """Holds the active catalog and replaces it wholesale on reload."""

    def __init__(self, catalog: AccessoryCatalog) -> None:
        self._catalog = catalog

    @property
    def catalog(self) -> AccessoryCatalog:
        return self._catalog

    def swap(self, catalog: AccessoryCatalog) -> AccessoryCatalog:
        previous, self._catalog = self._catalog, catalog
        return previous


def load_policy(path: str | Path | None = None) -> MountabilityPolicy:
    if path is None:
        return MountabilityPolicy.default()
    return MountabilityPolicy.from_file(path)


def load_catalog_or_empty(path: str | Path, policy: MountabilityPolicy | None = None) -> AccessoryCatalog:
    """Load the catalog, degrading to an empty one if the dataset is unusable."""
    try:
        catalog = AccessoryCatalog.load(path, policy)
    except CatalogLoadError as exc:
        logger.error("Accessory catalog unavailable, serving with zero accessories: %s", exc)
        return AccessoryCatalog((), policy)
    logger.info("Loaded accessories: %d", len(catalog))
    return catalog
