import logging
import math
from functools import cmp_to_key
from typing import Any, Callable, List, Mapping, Sequence, Union, Optional

from pydantic import BaseModel

from .models import Page

logger = logging.getLogger(__name__)

ASC = "asc"
DESC = "desc"
DIRECTIONS = (ASC, DESC)

PAGE_SIZE_OPTIONS = (10, 25, 50)

# Placeholder for a value that is absent at the requested path
MISSING = object()

FieldAccessor = Union[str, Sequence[str], Callable[[Any], Any]]


def _lookup(obj: Any, key: str) -> Any:
    if obj is None:
        return MISSING

    if isinstance(obj, Mapping):
        return obj.get(key, MISSING)

    if isinstance(obj, BaseModel):
        fields = type(obj).model_fields
        if key in fields:
            return getattr(obj, key)
        for field_name, field in fields.items():
            if field.alias == key:
                return getattr(obj, field_name)
        extra = obj.model_extra or {}
        return extra.get(key, MISSING)

    if isinstance(obj, (list, tuple)):
        try:
            return obj[int(key)]
        except (ValueError, IndexError):
            return MISSING

    return getattr(obj, key, MISSING)


def resolve_path(row: Any, path: Union[str, Sequence[str]]) -> Any:
    """
    Resolve a dotted path ("usage.cpu", "containers.0.name") within a row.
    Returns MISSING instead of raising when any segment is absent; None
    counts as absent.
    """
    segments = path.split(".") if isinstance(path, str) else list(path)
    value = row
    for segment in segments:
        value = _lookup(value, segment)
        if value is MISSING or value is None:
            return MISSING
    return value


def _accessor(order_by: FieldAccessor) -> Callable[[Any], Any]:
    if callable(order_by):
        def access(row):
            value = order_by(row)
            return MISSING if value is None else value
        return access
    return lambda row: resolve_path(row, order_by)


def _is_missing(value: Any) -> bool:
    return value is MISSING or (isinstance(value, float) and math.isnan(value))


def _type_rank(value: Any) -> str:
    # Real numbers compare with each other natively and share one rank
    if isinstance(value, (int, float)):
        return ""
    return type(value).__name__


def compare_values(a: Any, b: Any) -> int:
    """
    Ascending natural order. Missing values are equal to each other and sort
    below anything present. Values of incomparable types are ordered by type
    first (numbers before everything else), then by their text.
    """
    a_missing = _is_missing(a)
    b_missing = _is_missing(b)
    if a_missing or b_missing:
        if a_missing and b_missing:
            return 0
        return -1 if a_missing else 1

    try:
        if a < b:
            return -1
        if a > b:
            return 1
        return 0
    except TypeError:
        a_key = (_type_rank(a), str(a))
        b_key = (_type_rank(b), str(b))
        return (a_key > b_key) - (a_key < b_key)


def rank(rows: Optional[Sequence[Any]], order_by: FieldAccessor, direction: str = DESC) -> List[Any]:
    """
    Stable sort of rows by the value at order_by.

    Descending is the negation of the ascending comparison; ties always keep
    the original input order whichever direction is requested.
    """
    if direction not in DIRECTIONS:
        raise ValueError(f"direction must be one of {DIRECTIONS}, got {direction!r}")

    access = _accessor(order_by)
    sign = 1 if direction == ASC else -1

    keyed = [(access(row), position, row) for position, row in enumerate(rows or [])]

    def comparator(a, b):
        order = sign * compare_values(a[0], b[0])
        if order != 0:
            return order
        return a[1] - b[1]

    keyed.sort(key=cmp_to_key(comparator))
    return [row for _, _, row in keyed]


class PagedTableState:
    """
    Page index and page size of a table view.

    The page resets to 0 whenever the page size or the number of rows
    changes. set_page trusts its caller and does not clamp.
    """

    def __init__(self, page_size: int = 25, page: int = 0):
        self._check_page_size(page_size)
        self.page_size = page_size
        self.page = page
        self.row_count: Optional[int] = None

    @staticmethod
    def _check_page_size(page_size: int) -> None:
        if page_size not in PAGE_SIZE_OPTIONS:
            raise ValueError(f"page size must be one of {PAGE_SIZE_OPTIONS}, got {page_size}")

    def set_page(self, page: int) -> None:
        self.page = page

    def set_page_size(self, page_size: int) -> None:
        self._check_page_size(page_size)
        self.page_size = page_size
        self.page = 0

    def sync_row_count(self, count: int) -> bool:
        """Record the size of a new dataset. Returns True when the page was reset."""
        if count == self.row_count:
            return False
        self.row_count = count
        self.page = 0
        return True

    def page_count(self, total: int) -> int:
        return math.ceil(total / self.page_size) if total > 0 else 0

    def visible_slice(self, rows: Sequence[Any]) -> List[Any]:
        start = self.page * self.page_size
        return list(rows[start:start + self.page_size])


def paginate(rows: Optional[Sequence[Any]], order_by: str, direction: str = DESC,
             page: int = 0, page_size: int = 25) -> Page:
    """Rank rows and cut out the requested page"""
    ranked = rank(rows, order_by, direction)

    state = PagedTableState(page_size=page_size)
    state.sync_row_count(len(ranked))
    state.set_page(page)

    visible = state.visible_slice(ranked)
    if ranked and not visible:
        logger.info(f"Page {page} is past the end of {len(ranked)} rows")

    return Page(
        total=len(ranked),
        page=state.page,
        page_size=state.page_size,
        page_count=state.page_count(len(ranked)),
        order_by=order_by,
        direction=direction,
        rows=visible,
    )
