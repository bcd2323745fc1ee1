"""Helpers for driving the tracking services from several threads at once.

Each worker gets its own SQLAlchemy session, the way concurrent API requests
do, so the tests exercise the per-visit locks and the version check rather
than a shared identity map.
"""

from threading import Barrier, Thread
from typing import Any, Callable, List, Optional, Tuple

from sqlalchemy.orm import Session


def run_in_threads(
    targets: List[Callable[[], Any]], join_timeout: float = 10.0
) -> List[Tuple[Any, Optional[BaseException]]]:
    """Run every target in its own thread and wait for all of them.

    Returns:
        ``(result, error)`` pairs aligned with ``targets``
    """
    outcomes: List[Tuple[Any, Optional[BaseException]]] = [(None, None)] * len(targets)

    def wrap(i: int, fn: Callable[[], Any]) -> None:
        try:
            outcomes[i] = (fn(), None)
        except BaseException as e:
            outcomes[i] = (None, e)

    threads = [
        Thread(target=wrap, args=(i, target), daemon=True)
        for i, target in enumerate(targets)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=join_timeout)

    return outcomes


def session_worker(
    session_factory: Callable[[], Session],
    fn: Callable[[Session], Any],
    barrier: Optional[Barrier] = None,
) -> Callable[[], Any]:
    """Wrap ``fn`` so it runs with a private session, optionally after a barrier.

    ``fn`` should read whatever it needs from ORM objects before returning;
    the session is closed as soon as it does.
    """

    def _inner():
        if barrier is not None:
            barrier.wait(timeout=5)
        session = session_factory()
        try:
            return fn(session)
        finally:
            session.close()

    return _inner
