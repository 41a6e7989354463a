"""
Security service: response hardening headers, request tracking and audit log.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List

from gallery.security.problem_details import new_correlation_id

logger = logging.getLogger(__name__)

AUDIT_LOG_CAPACITY = 1000


class AuditLogger:
    """Bounded in-memory audit trail of upload events."""

    def __init__(self, capacity: int = AUDIT_LOG_CAPACITY):
        self.logs: Deque[Dict[str, Any]] = deque(maxlen=capacity)

    def log_event(self, event_type: str, **kwargs):
        """Log a security-relevant event."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            **kwargs,
        }
        self.logs.append(log_entry)
        logger.info("Audit log: %s", log_entry)

    def get_logs(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get recent audit logs."""
        return list(self.logs)[-limit:]

    def clear(self):
        self.logs.clear()


class SecurityService:
    """Aggregates the controls applied to every request."""

    def __init__(self):
        self.audit_logger = AuditLogger()
        self.security_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Content-Security-Policy": "default-src 'self'",
            "Referrer-Policy": "no-referrer",
            "Cross-Origin-Resource-Policy": "same-origin",
        }

    def generate_correlation_id(self) -> str:
        return new_correlation_id()

    def log_request(self, correlation_id: str, method: str, path: str):
        logger.info("Request %s %s correlation_id=%s", method, path, correlation_id)

    def log_upload(self, record_id: str, media_type: str, size: int, client_ip: str):
        self.audit_logger.log_event(
            "file_uploaded",
            record_id=record_id,
            media_type=media_type,
            size=size,
            client_ip=client_ip,
        )

    def get_security_headers(self) -> Dict[str, str]:
        """Get security headers to be added to responses."""
        return self.security_headers

    def get_audit_logs(self, limit: int = 100) -> list:
        return self.audit_logger.get_logs(limit)


# Global security service instance
security_service = SecurityService()
