from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Sequence, TypeVar

R = TypeVar("R")


def fetch_pages_parallel(
    fetch_page: Callable[[int], R],
    pages: Sequence[int],
    *,
    max_workers: int,
) -> List[R]:
    """
    Fetch a known, bounded set of page numbers on a thread pool.

    Results come back in the order of `pages`. The first failing page cancels the
    pages not yet started and its exception propagates.
    """
    if not pages:
        return []
    workers = max(1, min(max_workers, len(pages)))
    by_page: Dict[int, R] = {}
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="permit-page") as executor:
        futures = {executor.submit(fetch_page, page): page for page in pages}
        try:
            for fut in as_completed(futures):
                by_page[futures[fut]] = fut.result()
        except BaseException:
            for fut in futures:
                fut.cancel()
            raise
    return [by_page[page] for page in pages]
