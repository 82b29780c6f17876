# paygate/x402/hooks.py
"""
Lifecycle events for the payment flow.

Subscribers are kept in an ordered list per event and called in registration
order. They exist purely for observability: a subscriber that raises is
logged and skipped, and never changes the outcome of the payment flow.
"""
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class LifecycleEvent(Enum):
    """Events emitted around facilitator calls and address resolution."""
    BEFORE_VERIFY = "before_verify"
    AFTER_VERIFY = "after_verify"
    VERIFY_FAILURE = "verify_failure"
    BEFORE_SETTLE = "before_settle"
    AFTER_SETTLE = "after_settle"
    SETTLE_FAILURE = "settle_failure"
    ADDRESS_PROVISIONED = "address_provisioned"
    ADDRESS_REUSED = "address_reused"
    PROVISIONING_FAILURE = "provisioning_failure"
    PAYMENT_REQUIRED = "payment_required"


@dataclass
class EventContext:
    """Payload handed to subscribers. Fields unused by an event stay None."""
    event: LifecycleEvent
    payment_payload: Optional[Dict[str, Any]] = None
    requirement: Optional[Any] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


Subscriber = Callable[[EventContext], Any]


class LifecycleEvents:
    """Ordered subscriber lists keyed by lifecycle event."""

    def __init__(self):
        self._subscribers: Dict[LifecycleEvent, List[Subscriber]] = defaultdict(list)

    def subscribe(self, event: LifecycleEvent, subscriber: Subscriber) -> "LifecycleEvents":
        self._subscribers[event].append(subscriber)
        return self

    def on_before_verify(self, subscriber: Subscriber) -> "LifecycleEvents":
        return self.subscribe(LifecycleEvent.BEFORE_VERIFY, subscriber)

    def on_after_verify(self, subscriber: Subscriber) -> "LifecycleEvents":
        return self.subscribe(LifecycleEvent.AFTER_VERIFY, subscriber)

    def on_verify_failure(self, subscriber: Subscriber) -> "LifecycleEvents":
        return self.subscribe(LifecycleEvent.VERIFY_FAILURE, subscriber)

    def on_before_settle(self, subscriber: Subscriber) -> "LifecycleEvents":
        return self.subscribe(LifecycleEvent.BEFORE_SETTLE, subscriber)

    def on_after_settle(self, subscriber: Subscriber) -> "LifecycleEvents":
        return self.subscribe(LifecycleEvent.AFTER_SETTLE, subscriber)

    def on_settle_failure(self, subscriber: Subscriber) -> "LifecycleEvents":
        return self.subscribe(LifecycleEvent.SETTLE_FAILURE, subscriber)

    def subscribers(self, event: LifecycleEvent) -> List[Subscriber]:
        return list(self._subscribers.get(event, []))

    async def emit(self, context: EventContext) -> None:
        """Call every subscriber of context.event, awaiting coroutine subscribers."""
        for subscriber in self.subscribers(context.event):
            try:
                result = subscriber(context)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Lifecycle subscriber {getattr(subscriber, '__name__', subscriber)!r} "
                    f"failed on {context.event.value}: {e}"
                )


def log_lifecycle_event(context: EventContext) -> None:
    """Default subscriber: narrate the payment flow in the application log."""
    event = context.event
    if event is LifecycleEvent.BEFORE_VERIFY:
        logger.info("x402: Verifying payment...")
    elif event is LifecycleEvent.AFTER_VERIFY:
        logger.info(f"x402: Payment verified from {getattr(context.result, 'payer', None)}")
    elif event is LifecycleEvent.VERIFY_FAILURE:
        logger.error(f"x402: Payment verification failed: {context.error}")
    elif event is LifecycleEvent.BEFORE_SETTLE:
        logger.info("x402: Settling payment...")
    elif event is LifecycleEvent.AFTER_SETTLE:
        logger.info(f"x402: Payment settled: {getattr(context.result, 'transaction', None)}")
    elif event is LifecycleEvent.SETTLE_FAILURE:
        logger.error(f"x402: Payment settlement failed: {context.error}")


def register_default_logging(events: LifecycleEvents) -> LifecycleEvents:
    """Attach log_lifecycle_event to the six facilitator events."""
    for event in (
        LifecycleEvent.BEFORE_VERIFY,
        LifecycleEvent.AFTER_VERIFY,
        LifecycleEvent.VERIFY_FAILURE,
        LifecycleEvent.BEFORE_SETTLE,
        LifecycleEvent.AFTER_SETTLE,
        LifecycleEvent.SETTLE_FAILURE,
    ):
        events.subscribe(event, log_lifecycle_event)
    return events
