import logging, os

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DEFAULT_LEVEL = os.getenv("FIELDOPS_LOG_LEVEL", "INFO").upper()

def setup_logging():
    logger = logging.getLogger("fieldops")
    logger.setLevel(getattr(logging, _DEFAULT_LEVEL, logging.INFO))

    # Avoid duplicate console handlers
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        ch.setLevel(logger.level)
        logger.addHandler(ch)

    logger.propagate = False
    return logger

def get_logger(name: str | None = None) -> logging.Logger:
    base = logging.getLogger("fieldops")
    if not name:
        return base
    # module names arrive as "fieldops.services.x"; keep the tree flat under the base
    if name.startswith("fieldops."):
        name = name[len("fieldops."):]
    return base.getChild(name)

logger = setup_logging()
