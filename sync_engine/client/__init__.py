"""Remote API client."""

from .remote import RemoteDataClient

__all__ = ["RemoteDataClient"]
