"""Abstract service lifecycle interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Service(ABC):
    """Long-lived collaborator started and stopped by the ServiceManager."""

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    async def health_check(self) -> bool:
        """Report whether the service can currently do its job."""
        return True
