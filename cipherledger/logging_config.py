"""
Logging configuration for the confidential ledger.

Structured JSON logging plus an audit logger for ledger events. Audit
entries carry record ids, identities and key ids; plaintext scores are
never logged.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Audit trail of ledger activity: submissions, decryption requests and
    fulfillments, denied access, withdrawals and security events.
    """

    def __init__(self, name: str = "cipherledger.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        message = kwargs.pop("message", "")
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }
        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {message}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def record_submitted(self, record_id: int, owner: str, payment: int) -> None:
        self._log(
            logging.INFO,
            "RECORD_SUBMITTED",
            record_id=record_id,
            owner=owner,
            payment=payment,
            message=f"Record {record_id} created for {owner}"
        )

    def submission_rejected(self, owner: str, code: str, reason: str) -> None:
        self._log(
            logging.WARNING,
            "SUBMISSION_REJECTED",
            owner=owner,
            code=code,
            reason=reason,
            message=f"Submission by {owner} rejected: {code}"
        )

    def decryption_requested(self, record_id: int, caller: str) -> None:
        self._log(
            logging.INFO,
            "DECRYPTION_REQUESTED",
            record_id=record_id,
            caller=caller,
            message=f"Decryption requested for record {record_id}"
        )

    def decryption_fulfilled(self, record_id: int, oracle_kid: str) -> None:
        self._log(
            logging.INFO,
            "DECRYPTION_FULFILLED",
            record_id=record_id,
            oracle_kid=oracle_kid,
            message=f"Decryption fulfilled for record {record_id}"
        )

    def access_denied(self, record_id: int, caller: str, operation: str) -> None:
        self._log(
            logging.WARNING,
            "ACCESS_DENIED",
            record_id=record_id,
            caller=caller,
            operation=operation,
            message=f"{operation} on record {record_id} denied for {caller}"
        )

    def withdrawal(self, caller: str, amount: int) -> None:
        self._log(
            logging.INFO,
            "WITHDRAWAL",
            caller=caller,
            amount=amount,
            message=f"Withdrawal of {amount} by {caller}"
        )

    def deposit(self, sender: str, amount: int) -> None:
        self._log(
            logging.INFO,
            "DEPOSIT",
            sender=sender,
            amount=amount,
            message=f"Deposit of {amount} from {sender}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set (or generate) the request ID for the current context."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    return request_id_var.get()


audit_log = AuditLogger()
