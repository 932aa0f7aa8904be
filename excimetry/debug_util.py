import os, logging, sys

logger = logging.getLogger("excimetry")

def _ensure_logger():
    """Attach a basic StreamHandler if none present.

    Done lazily so importing the package does not override the host
    application's logging configuration. Only when a debug line is actually
    emitted (EXCIMETRY_DEBUG=1) do we make sure a handler exists.
    """
    if logger.handlers:
        return
    logger.setLevel(logging.DEBUG)
    h = logging.StreamHandler(stream=sys.stdout)
    fmt = logging.Formatter('%(asctime)s %(levelname)s %(message)s')
    h.setFormatter(fmt)
    logger.addHandler(h)

def dbg(msg: str):
    """Emit a debug line when EXCIMETRY_DEBUG=1."""
    if os.environ.get('EXCIMETRY_DEBUG') == '1':
        _ensure_logger()
        logger.debug('[debug] %s', msg)
