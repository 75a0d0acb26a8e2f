"""Session registry — capacity-bounded, multi-tenant session index."""

from switchboard.registry.registry import (
    CapacityError,
    NotFoundError,
    RegistryError,
    SessionExistsError,
    SessionFactory,
    SessionRegistry,
)

__all__ = [
    "CapacityError",
    "NotFoundError",
    "RegistryError",
    "SessionExistsError",
    "SessionFactory",
    "SessionRegistry",
]
