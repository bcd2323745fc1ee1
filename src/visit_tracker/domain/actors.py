"""Verified caller identity handed to the tracking services."""

from dataclasses import dataclass

from ..core.enums import ActorRole


@dataclass(frozen=True)
class Actor:
    """An already-authenticated platform user."""

    actor_id: str
    role: ActorRole

    @property
    def is_monitoring(self) -> bool:
        return self.role == ActorRole.MONITORING

    @property
    def is_professional(self) -> bool:
        return self.role == ActorRole.PROFESSIONAL
