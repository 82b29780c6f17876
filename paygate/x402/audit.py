# paygate/x402/audit.py
"""
Audit logging for x402 payments.

This module records payment lifecycle events for:
- Dispute resolution
- Financial reconciliation (which PaymentIntent backed which address)
- Debugging failures

Log format: JSON lines (one event per line)
Log location: Configured via AUDIT_LOG_PATH

The audit log is a lifecycle subscriber. A failed write is logged and never
affects the request being served.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from paygate.x402.hooks import EventContext, LifecycleEvent, LifecycleEvents

logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Types of audit events that can be logged."""
    PAYMENT_REQUIRED_SENT = "payment_required_sent"
    ADDRESS_PROVISIONED = "address_provisioned"
    ADDRESS_REUSED = "address_reused"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_SETTLED = "payment_settled"
    PAYMENT_FAILED = "payment_failed"
    ERROR = "error"


def generate_request_id() -> str:
    """Generate a short unique id for tracking."""
    return str(uuid.uuid4())[:8]


def create_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    wallet_address: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Create an audit event dictionary ready to be written as a JSON line."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type.value,
        "request_id": request_id or generate_request_id(),
        "wallet_address": wallet_address,
        "data": data,
    }


class AuditLog:
    """Append-only JSON-lines audit trail."""

    def __init__(self, path: str):
        self.path = Path(path)

    def log_event(
        self,
        event_type: AuditEventType,
        data: Dict[str, Any],
        wallet_address: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Append one event.

        Returns:
            The request_id used for this event, or None on error
        """
        event = create_audit_event(event_type, data, wallet_address, request_id)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(json.dumps(event, default=str) + "\n")
        except OSError as e:
            logger.error(f"Failed to write audit event: {e}")
            return None

        logger.debug(f"Audit event logged: {event_type.value} [{event['request_id']}]")
        return event["request_id"]

    def read_events(
        self,
        max_entries: int = 100,
        event_type: Optional[AuditEventType] = None,
    ) -> List[Dict[str, Any]]:
        """
        Read entries from the audit log.

        Returns:
            List of audit events, most recent first
        """
        if not self.path.exists():
            return []

        events = []
        with open(self.path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if event_type and event.get("event_type") != event_type.value:
                    continue
                events.append(event)

        return list(reversed(events))[:max_entries]

    def handle(self, context: EventContext) -> None:
        """Lifecycle subscriber translating events into audit records."""
        event = context.event
        requirement = context.requirement
        result = context.result
        payer = getattr(result, "payer", None)

        if event is LifecycleEvent.PAYMENT_REQUIRED:
            self.log_event(AuditEventType.PAYMENT_REQUIRED_SENT, context.data or {})
        elif event is LifecycleEvent.ADDRESS_PROVISIONED:
            self.log_event(AuditEventType.ADDRESS_PROVISIONED, context.data or {})
        elif event is LifecycleEvent.ADDRESS_REUSED:
            self.log_event(AuditEventType.ADDRESS_REUSED, context.data or {})
        elif event is LifecycleEvent.AFTER_VERIFY:
            self.log_event(
                AuditEventType.PAYMENT_VERIFIED,
                {"network": requirement.network, "pay_to": requirement.pay_to, "amount": requirement.amount},
                wallet_address=payer,
            )
        elif event is LifecycleEvent.AFTER_SETTLE:
            self.log_event(
                AuditEventType.PAYMENT_SETTLED,
                {
                    "network": getattr(result, "network", None) or requirement.network,
                    "pay_to": requirement.pay_to,
                    "amount": requirement.amount,
                    "transaction": getattr(result, "transaction", None),
                },
                wallet_address=payer,
            )
        elif event in (LifecycleEvent.VERIFY_FAILURE, LifecycleEvent.SETTLE_FAILURE):
            self.log_event(
                AuditEventType.PAYMENT_FAILED,
                {
                    "stage": "verify" if event is LifecycleEvent.VERIFY_FAILURE else "settle",
                    "reason": context.error,
                    "error_kind": getattr(result, "error_kind", None),
                    "network": requirement.network if requirement else None,
                    "pay_to": requirement.pay_to if requirement else None,
                },
                wallet_address=payer,
            )
        elif event is LifecycleEvent.PROVISIONING_FAILURE:
            self.log_event(
                AuditEventType.ERROR,
                {"error_type": "provisioning", "error_message": context.error, "context": context.data or {}},
            )

    def subscribe(self, events: LifecycleEvents) -> "AuditLog":
        """Attach this audit log to every lifecycle event it records."""
        for event in (
            LifecycleEvent.PAYMENT_REQUIRED,
            LifecycleEvent.ADDRESS_PROVISIONED,
            LifecycleEvent.ADDRESS_REUSED,
            LifecycleEvent.AFTER_VERIFY,
            LifecycleEvent.VERIFY_FAILURE,
            LifecycleEvent.AFTER_SETTLE,
            LifecycleEvent.SETTLE_FAILURE,
            LifecycleEvent.PROVISIONING_FAILURE,
        ):
            events.subscribe(event, self.handle)
        return self
