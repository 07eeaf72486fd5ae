"""Owner of the single principal service instance."""

import logging
from typing import Any

from background_service.base_service import ConstructionStyle, DelegateAdapter, is_delegate
from background_service.management.service_registry import check_constructible


class LifecycleError(Exception):
    """Lifecycle contract violated by the caller (state regression, double construction)."""
    pass


class ServiceHolder:
    """Constructs the principal instance once and releases it once."""

    def __init__(self):
        self.logger = logging.getLogger("holder")
        self._instance: Any = None
        self._delegate: DelegateAdapter | None = None
        self._constructed = False
        self._released = False

    @property
    def instance(self) -> Any:
        return self._instance

    @property
    def delegate(self) -> DelegateAdapter:
        """Hook dispatcher for the instance. Hooks it lacks are no-ops."""
        if self._delegate is None:
            return DelegateAdapter(None)
        return self._delegate

    @property
    def is_delegate(self) -> bool:
        """True if the held instance satisfies the lifecycle-hook capability."""
        return self._instance is not None and is_delegate(self._instance)

    @property
    def is_alive(self) -> bool:
        return self._constructed and not self._released

    def construct(self, service_type: type, arguments: list[str]) -> Any:
        """Build the instance from the startup arguments.

        Raises:
            NotConstructibleError: If ``service_type`` lacks the construction capability
            LifecycleError: If an instance was already constructed
        """
        if self._constructed:
            raise LifecycleError("A service instance was already constructed for this process")

        style = check_constructible(service_type)
        if style is ConstructionStyle.ARGUMENTS:
            instance = service_type(list(arguments))
        else:
            self.logger.debug(f"{service_type.__name__} takes no arguments, constructing without them")
            instance = service_type()

        self._instance = instance
        self._delegate = DelegateAdapter(instance)
        self._constructed = True
        self.logger.info(f"Constructed {type(instance).__name__}")
        return instance

    def release(self) -> None:
        """Drop the instance. Releasing twice is a no-op."""
        if not self._constructed or self._released:
            return
        name = type(self._instance).__name__
        self._instance = None
        self._delegate = None
        self._released = True
        self.logger.info(f"Released {name}")
