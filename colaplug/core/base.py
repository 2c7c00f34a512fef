from __future__ import annotations

import abc
from typing import Any, Dict


class ColaManager(abc.ABC):
    """Base class for the long-lived managers of a colaplug run."""

    def __init__(self, name: str) -> None:
        """Initialize the manager with a name.

        Args:
            name: The name of the manager
        """
        self._name: str = name
        self._initialized: bool = False
        self._healthy: bool = False

    @abc.abstractmethod
    def initialize(self) -> None:
        """Initialize the manager.

        Raises:
            ManagerInitializationError: If initialization fails
        """

    @abc.abstractmethod
    def shutdown(self) -> None:
        """Release whatever the manager holds."""

    def status(self) -> Dict[str, Any]:
        """Get the current status of the manager.

        Returns:
            Dictionary containing status information
        """
        return {
            'name': self._name,
            'initialized': self._initialized,
            'healthy': self._healthy
        }

    @property
    def name(self) -> str:
        return self._name

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def healthy(self) -> bool:
        return self._healthy
