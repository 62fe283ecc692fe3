import os, logging, sys

logger = logging.getLogger("rds_os_metrics")

def _ensure_logger():
    """Attach a basic StreamHandler if none present.

    Done lazily so importing the package never overrides host logging
    configuration (the Lambda runtime installs its own root handler). Only
    when something is actually emitted and neither this logger nor the root
    logger has a handler do we add one writing to stdout.
    """
    if logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    if logger.handlers or logging.getLogger().handlers:
        return
    h = logging.StreamHandler(stream=sys.stdout)
    fmt = logging.Formatter('%(asctime)s %(levelname)s %(message)s')
    h.setFormatter(fmt)
    logger.addHandler(h)

def get_logger() -> logging.Logger:
    _ensure_logger()
    return logger

def dbg(msg: str):
    """Emit a debug info line when DEBUG_VERBOSE=1.

    Export DEBUG_VERBOSE=1 before invoking the handler (or starting the
    server / runner) to trace collaborator calls and per-pass totals.
    """
    if os.environ.get('DEBUG_VERBOSE') == '1':
        _ensure_logger()
        logger.info('[debug] %s', msg)
