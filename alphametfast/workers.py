"""Process-pool helper for per-sample stages.

Peak detection and gap filling only read one sample's scans, so samples
are farmed out to a ``ProcessPoolExecutor``. Results always come back in
submission order, after every worker has finished.
"""

import logging
import os
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Callable, List, Sequence, Tuple

logger = logging.getLogger(__name__)


def default_n_workers() -> int:
    """CPU count minus one core of headroom, at least 1."""
    return max(1, (os.cpu_count() or 1) - 1)


def map_in_workers(
    func: Callable[..., Any],
    arg_tuples: Sequence[Tuple],
    n_workers: int = 1,
    return_exceptions: bool = False,
) -> List[Any]:
    """Apply ``func(*args)`` to every tuple in ``arg_tuples``.

    Parameters
    ----------
    func : callable
        Module-level function (must be picklable for n_workers > 1)
    arg_tuples : sequence of tuples
        Positional arguments per call
    n_workers : int
        1 runs in-process; more uses a process pool
    return_exceptions : bool
        Put raised exceptions into the result list instead of propagating

    Returns
    -------
    list
        One result (or exception) per input, in input order
    """
    if n_workers <= 1 or len(arg_tuples) <= 1:
        results = []
        for args in arg_tuples:
            try:
                results.append(func(*args))
            except Exception as e:
                if not return_exceptions:
                    raise
                results.append(e)
        return results

    n_workers = min(n_workers, len(arg_tuples))
    logger.info(f"  Using {n_workers} parallel workers")

    results = []
    with ProcessPoolExecutor(max_workers=n_workers) as executor:
        futures = [executor.submit(func, *args) for args in arg_tuples]
        for future in futures:
            try:
                results.append(future.result())
            except Exception as e:
                if not return_exceptions:
                    logger.error(f"Worker error: {e}")
                    raise
                results.append(e)
    return results
