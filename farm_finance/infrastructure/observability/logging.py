"""Structured JSON logging for the finance engine"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from farm_finance.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_payment_outcome(
    account_id: str,
    deal_id: str,
    outcome: str,
    amount_paid: float,
    interest_due: float,
    balance: float,
) -> None:
    """Log one deal's monthly processing result"""
    logging.info(
        "Payment processed",
        extra={
            "account_id": account_id,
            "deal_id": deal_id,
            "step": "monthly_payment",
            "outcome": outcome,
            "amount_paid": round(amount_paid, 2),
            "interest_due": round(interest_due, 2),
            "balance": round(balance, 2),
        },
    )


def log_batch_completed(
    period: str,
    processed: int,
    paid_off: int,
    defaulted: int,
    duration_ms: float,
) -> None:
    """Log the monthly batch summary"""
    logging.info(
        "Monthly batch completed",
        extra={
            "period": period,
            "step": "batch_complete",
            "processed": processed,
            "paid_off": paid_off,
            "defaulted": defaulted,
            "duration_ms": duration_ms,
        },
    )
