from dataclasses import dataclass
from typing import Iterable, Iterator, TypeVar

from app.core.errors import BookingValidationError

T = TypeVar("T")


@dataclass(frozen=True)
class ClientKey:
    """Identity used to group a client's appointments.

    Clients have no account, so the display name is the natural key. All
    lookups go through this type so the matching rule lives in one place.
    """

    value: str

    @classmethod
    def from_name(cls, name: str) -> "ClientKey":
        normalized = " ".join((name or "").split())
        if not normalized:
            raise BookingValidationError("Client name must not be empty")
        return cls(normalized)

    def matches(self, name: str) -> bool:
        return " ".join((name or "").split()) == self.value

    def __str__(self) -> str:
        return self.value


def appointments_for(key: ClientKey, appointments: Iterable[T]) -> Iterator[T]:
    """Yield the appointments that belong to ``key``."""
    for appointment in appointments:
        if key.matches(appointment.client_name):
            yield appointment


def is_released(key: ClientKey, released_clients: Iterable[str]) -> bool:
    return any(key.matches(name) for name in released_clients)
