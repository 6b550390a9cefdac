"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger
from fareflow_gateway.config import settings

LOG_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"

# Client libraries that log one INFO line per outbound call (SMS, email, live state)
CHATTY_LOGGERS = ("httpx", "httpcore")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON lines stamped with the event time, level and service name"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Send JSON logs to stdout; replaces any handlers already on the root logger"""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter(LOG_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_settlement(
    request_id: str,
    card_uid: str,
    bus_plate_number: str,
    outcome: str,
    hardware_code: str,
    new_balance: int | None,
    duration_ms: float,
) -> None:
    """One line per tap, keyed by request id, for settlement analysis"""
    logging.info(
        "Settlement completed",
        extra={
            "request_id": request_id,
            "card_uid": card_uid,
            "bus_plate_number": bus_plate_number,
            "step": "settlement_complete",
            "settlement_outcome": outcome,
            "hardware_code": hardware_code,
            "new_balance": new_balance,
            "duration_ms": duration_ms,
        },
    )
