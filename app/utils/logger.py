import logging, sys
from app.config import settings

# Third-party loggers that echo every outbound request at INFO.
_NOISY = ("httpx", "httpcore", "google_genai")


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        ))
        logger.addHandler(handler)
        logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
        logger.propagate = False
        for noisy in _NOISY:
            logging.getLogger(noisy).setLevel(logging.WARNING)
    return logger
