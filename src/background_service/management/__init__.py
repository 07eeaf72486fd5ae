"""Lifecycle management components."""

from .lifecycle import BackgroundService, LifecycleState
from .loop_driver import AsyncioLoopDriver
from .service_holder import LifecycleError, ServiceHolder
from .service_registry import (
    FatalConfigurationError,
    NotConstructibleError,
    PrincipalClassMissingError,
    ServiceRegistry,
    ServiceTypeNotFoundError,
)
from .signal_relay import FORWARDED_SIGNALS, TERMINATION_SIGNAL, SignalRegistration, SignalRegistrationError, SignalRelay


__all__ = [
    "BackgroundService",
    "LifecycleState",
    "AsyncioLoopDriver",
    "LifecycleError",
    "ServiceHolder",
    "FatalConfigurationError",
    "NotConstructibleError",
    "PrincipalClassMissingError",
    "ServiceRegistry",
    "ServiceTypeNotFoundError",
    "FORWARDED_SIGNALS",
    "TERMINATION_SIGNAL",
    "SignalRegistration",
    "SignalRegistrationError",
    "SignalRelay",
]
