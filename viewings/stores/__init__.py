"""Data-layer abstractions and implementations."""

from .base import AppointmentStore, DirectoryStore
from .memory import InMemoryAppointmentStore, InMemoryDirectory

__all__ = [
    "AppointmentStore",
    "DirectoryStore",
    "InMemoryAppointmentStore",
    "InMemoryDirectory",
]
