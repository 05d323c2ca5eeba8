# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Application services exports.
# ============================================================================
"""Visits application services."""

from .completion_slot import CompletionSlot
from .payment_orchestrator import PaymentOrchestrator
from .qr_session import QrSession, SettlementContext
from .subscription_broker import ChannelLost, EventSubscriptionBroker, Subscription
from .visit_lifecycle_controller import VisitLifecycleController

__all__ = [
    "CompletionSlot",
    "EventSubscriptionBroker",
    "Subscription",
    "ChannelLost",
    "QrSession",
    "SettlementContext",
    "PaymentOrchestrator",
    "VisitLifecycleController",
]
