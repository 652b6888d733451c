from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def for_each(items: Sequence[T], fn: Callable[[T], R], workers: int = 1) -> List[R]:
    """
    Apply `fn` to every item, at most `workers` at a time. Results keep input order.
    All items are finished before this returns.
    """
    if workers <= 1 or len(items) <= 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=min(workers, len(items)), thread_name_prefix="gemini-files") as pool:
        return list(pool.map(fn, items))
