import logging
import sys

ALERT_LOGGER_NAME = "billing.alert"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stdout,
    )


def alert_logger() -> logging.Logger:
    return logging.getLogger(ALERT_LOGGER_NAME)
