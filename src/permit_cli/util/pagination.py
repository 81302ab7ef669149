from __future__ import annotations

from typing import Any, Callable, Generator, List, Optional, TypeVar

from .errors import PermitAPIError

T = TypeVar("T")

DEFAULT_PER_PAGE = 100


def extract_items(body: Any, *, what: str = "page") -> List[Any]:
    """
    Return the item list of a collection response: either {"data": [...]} or a bare list.
    """
    if isinstance(body, list):
        return body
    if isinstance(body, dict) and isinstance(body.get("data"), list):
        return body["data"]
    raise PermitAPIError(f"Malformed {what} response: expected a list or an object with a 'data' array")


def paginate(
    fetch_page: Callable[[int], List[T]],
    per_page: int = DEFAULT_PER_PAGE,
    *,
    on_page: Optional[Callable[[int, int], None]] = None,
) -> Generator[T, None, None]:
    """
    Generic page-number paginator yielding items from fetch_page(page), page = 1, 2, ...
    Pagination stops after the first page that holds fewer than per_page items.
    Errors from fetch_page propagate unchanged.
    """
    if per_page < 1:
        raise ValueError("per_page must be >= 1")
    page = 1
    while True:
        items = fetch_page(page)
        if on_page is not None:
            on_page(page, len(items))
        for it in items:
            yield it
        if len(items) < per_page:
            break
        page += 1


def fetch_all_pages(
    fetch_page: Callable[[int], List[T]],
    per_page: int = DEFAULT_PER_PAGE,
    *,
    on_page: Optional[Callable[[int, int], None]] = None,
) -> List[T]:
    """
    Materialize every page. Any error aborts the whole fetch; no partial list is returned.
    """
    return list(paginate(fetch_page, per_page, on_page=on_page))
