"""background_service - headless application lifecycle for bundle-packaged background processes."""

from background_service.base_service import (
    BackgroundServicable,
    BackgroundServiceDelegate,
    BackgroundServiceInitializable,
    service,
)
from background_service.management.lifecycle import BackgroundService, LifecycleState

__version__ = "0.1.0"

__all__ = [
    "BackgroundService",
    "BackgroundServicable",
    "BackgroundServiceDelegate",
    "BackgroundServiceInitializable",
    "LifecycleState",
    "service",
]
