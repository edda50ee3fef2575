"""
boardsync Services

Service base classes, the event bus and the optimistic mutation coordinator.
"""

from boardsync.services.base import Service, ServiceContext
from boardsync.services.coordinator import BoardMutationCoordinator, build_coordinator
from boardsync.services.events import (
    Event,
    EventBus,
    MutationApplied,
    MutationConfirmed,
    MutationEvent,
    MutationRejected,
    MutationRolledBack,
    Notification,
)
from boardsync.services.results import MutationOutcome, MutationResult

__all__ = [
    # Base
    "Service",
    "ServiceContext",
    # Coordinator
    "BoardMutationCoordinator",
    "build_coordinator",
    "MutationOutcome",
    "MutationResult",
    # Events
    "Event",
    "EventBus",
    "MutationEvent",
    "MutationApplied",
    "MutationConfirmed",
    "MutationRolledBack",
    "MutationRejected",
    "Notification",
]
