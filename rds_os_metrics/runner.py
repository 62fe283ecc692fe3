"""Local runner: invoke the handler for one instance every minute.

    python -m rds_os_metrics.runner <instance_id>

Reuses one ResourceIdCache across iterations, the way a warm Lambda
container would, and logs each invocation's execution time.
"""
from __future__ import annotations
import sys, time
from typing import Callable, List, Optional

from .collectors.cache import ResourceIdCache
from .debug_util import get_logger
from . import handler as invocation

PERIOD_SECONDS = 60


def main(argv: Optional[List[str]] = None, iterations: Optional[int] = None,
         sleep: Callable[[float], None] = time.sleep, cache: Optional[ResourceIdCache] = None,
         **handler_kwargs) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print('usage: python -m rds_os_metrics.runner <instance_id>', file=sys.stderr)
        return 2
    event = {'instance_id': argv[0]}
    cache = ResourceIdCache() if cache is None else cache
    logger = get_logger()
    n = 0
    while iterations is None or n < iterations:
        start = time.perf_counter()
        invocation.handler(event, {}, cache=cache, **handler_kwargs)
        logger.info('execution time: %.1f', (time.perf_counter() - start) * 1000)
        n += 1
        if iterations is None or n < iterations:
            sleep(PERIOD_SECONDS)
    return 0


if __name__ == '__main__':
    sys.exit(main())
