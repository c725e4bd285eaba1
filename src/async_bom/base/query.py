# src/async_bom/base/query.py
import copy
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pymongo import ASCENDING, DESCENDING

from .options import DEFAULT_SIZE

# --- Setup Logging ---
log = logging.getLogger(__name__)

# Read-only lookup of sort direction tokens, keyed by lower-cased token.
SORT_DIRECTIONS: Mapping[str, int] = MappingProxyType(
    {"asc": ASCENDING, "desc": DESCENDING}
)

SortSpec = List[Tuple[str, int]]


# --- Predicate Fragments ---
class Combinator(Enum):
    """How a fragment takes part in the resolved filter."""

    AND = "and"
    OR = "or"
    IN = "in"
    NOT = "not"


@dataclass(frozen=True)
class Fragment:
    """A single field/value predicate contributed by a chained call."""

    field: str
    value: Any


# --- Directives ---
@dataclass
class Sort:
    """Sort directive. `direction` is 'asc' or 'desc', case-insensitive."""

    field: str = ""
    direction: str = ""


@dataclass
class Limit:
    """
    Page/size pair used to compute skip and limit for a listing.

    A size of 0 or less means "use the builder's default page size".
    """

    page: int = 1
    size: int = 0


@dataclass
class Pagination:
    """Snapshot returned after a paginated listing."""

    total_count: int = 0
    total_pages: int = 0
    current_page: int = 1
    size: int = DEFAULT_SIZE


@dataclass(frozen=True)
class ResolvedQuery:
    """
    Immutable result of resolving builder state.

    `filter` is a private deep copy; mutating the builder afterwards does not
    affect it. `skip`, `limit` and `sort` are only populated for paginated
    listings.
    """

    filter: Dict[str, Any] = field(default_factory=dict)
    skip: int = 0
    limit: int = 0
    sort: Optional[SortSpec] = None


# --- Resolution ---
def _equality_clauses(fragments: Sequence[Fragment]) -> List[Dict[str, Any]]:
    return [{fragment.field: fragment.value} for fragment in fragments]


def resolve_filter(
    fragments: Mapping[Combinator, Sequence[Fragment]],
    condition: Any = None,
) -> Any:
    """
    Resolve accumulated fragments into a single filter document.

    A raw `condition` short-circuits resolution and is returned as is; it is
    never merged with the fragments. Otherwise:

    - AND fragments become ``{"$and": [{field: value}, ...]}``
    - OR fragments become ``{"$or": [...]}`` in the same top-level document,
      so MongoDB conjoins them with the ``$and`` clause
    - each IN fragment sets ``{field: {"$in": value}}`` directly on the result
    - NOT fragments become ``{"$nor": [{field: value}, ...]}``

    Args:
        fragments: Fragments keyed by combinator, in insertion order.
        condition: Optional raw filter overriding all fragments.

    Returns:
        The filter document; ``{}`` when nothing was accumulated.
    """
    if condition is not None:
        log.debug(f"Using raw condition override: {condition!r}")
        return condition

    result: Dict[str, Any] = {}
    and_fragments = fragments.get(Combinator.AND, ())
    or_fragments = fragments.get(Combinator.OR, ())
    in_fragments = fragments.get(Combinator.IN, ())
    not_fragments = fragments.get(Combinator.NOT, ())

    if and_fragments:
        result["$and"] = _equality_clauses(and_fragments)
    if or_fragments:
        result["$or"] = _equality_clauses(or_fragments)
    for fragment in in_fragments:
        result[fragment.field] = {"$in": fragment.value}
    if not_fragments:
        result["$nor"] = _equality_clauses(not_fragments)

    log.debug(f"Resolved filter: {result}")
    return result


def calculate_offset(page: int, size: int, default_size: int) -> Tuple[int, int]:
    """
    Compute (limit, offset) for a 1-based page.

    Pages below 1 are treated as page 1; sizes of 0 or less fall back to
    `default_size`.
    """
    limit = size if size > 0 else default_size
    if page < 1:
        page = 1
    offset = int(math.ceil((page - 1) * limit))
    return limit, offset


def total_pages(total_count: int, size: int) -> int:
    """Number of pages needed for `total_count` items, `size` per page."""
    if size <= 0:
        raise ValueError(f"Page size must be positive, got {size}")
    ratio = total_count / size
    if ratio < 0:
        ratio = 1
    return int(math.ceil(ratio))


def resolve_sort(sort: Optional[Sort]) -> Optional[SortSpec]:
    """
    Translate a Sort directive into a PyMongo sort specification.

    Returns None when no sort applies. The field name is lower-cased and
    sorted ascending unless a recognised direction token says otherwise.
    """
    if sort is None or not sort.field:
        return None
    direction = ASCENDING
    if sort.direction:
        direction = SORT_DIRECTIONS.get(sort.direction.lower(), ASCENDING)
    return [(sort.field.lower(), direction)]


def freeze_filter(query_filter: Any) -> Dict[str, Any]:
    """Deep copy a resolved filter so later builder mutation cannot leak into it."""
    return copy.deepcopy(query_filter)
