"""Core interfaces/abstractions.

Why:
- Defines the contracts (Protocol) concrete adapters implement.
- Inverts dependencies: the core depends on abstractions, never on adapters.
"""

from core.interfaces.gateway import PersistenceGateway
from core.interfaces.notifier import NotificationPort

__all__ = ["NotificationPort", "PersistenceGateway"]
