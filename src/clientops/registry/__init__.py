"""Client registry -- records, ordered access, and onboarding."""

from src.clientops.registry.repository import ClientRegistry
from src.clientops.registry.schemas import ClientRecord

__all__ = ["ClientRecord", "ClientRegistry"]
