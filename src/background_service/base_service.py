"""Base service classes and capability checks for background services.

A principal type is usable by the lifecycle manager when it satisfies the
construction capability (built from the list of startup arguments).
Lifecycle hooks are a second, independent capability; every hook is optional
and defaults to a no-op.
"""

import inspect
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .management.lifecycle import BackgroundService


_log = logging.getLogger("svc.base")

# Registry for decorated classes
_service_registry: dict[str, type] = {}

HOOK_NAMES = ("did_finish_launching", "will_terminate", "did_receive_signal")


def service(service_type: str):
    """Decorator to register a principal type under an explicit name.

    The name is what bundle metadata refers to in its ``principal_class`` key.

    Args:
        service_type: Explicit service type identifier. Can contain dots for
                     namespacing (e.g., 'examples.minimal', 'mail.fetcher').

    Example:
        @service('hello_world')
        class HelloWorldService(BackgroundServicable):
            pass
    """
    if not isinstance(service_type, str):
        raise TypeError(
            f"@service decorator requires a string service_type argument. "
            f"Usage: @service('my_service_type'). Got: {type(service_type).__name__}"
        )

    if not service_type:
        raise ValueError(
            "@service decorator requires a non-empty service_type argument. "
            "Usage: @service('my_service_type')"
        )

    def decorator(cls: type) -> type:
        _service_registry[service_type] = cls
        cls._service_type = service_type
        _log.debug(f"Registered service '{service_type}' -> {cls.__name__}")
        return cls

    return decorator


def get_service_class(service_type: str) -> type | None:
    """Get service class by type from decorator registry."""
    return _service_registry.get(service_type)


class BackgroundServiceInitializable:
    """Construction capability: build the service from startup arguments."""

    def __init__(self, arguments: list[str]):
        self.arguments = list(arguments)


class BackgroundServiceDelegate:
    """Lifecycle hooks for background services.

    All hooks are optional. Override the ones you need.
    """

    # Set by BackgroundService after construction
    background_service: "BackgroundService | None" = None

    def did_finish_launching(self) -> None:
        """Called once after construction and signal setup, before the first loop cycle."""

    def will_terminate(self) -> None:
        """Called once right before the instance is released."""

    def did_receive_signal(self, signum: int) -> None:
        """Called for each delivery of SIGHUP, SIGINT, SIGCHLD, SIGUSR1 or SIGUSR2.

        Args:
            signum: The signal number that was received
        """

    def request_termination(self) -> None:
        """Ask the owning lifecycle manager to shut down after the current cycle."""
        if self.background_service is None:
            _log.warning(f"{type(self).__name__} is not attached to a running background service")
            return
        self.background_service.terminate()


class BackgroundServicable(BackgroundServiceInitializable, BackgroundServiceDelegate):
    """Base class for background services: construction plus lifecycle hooks.

    Example:
        @service('mail.fetcher')
        class MailFetcher(BackgroundServicable):
            def did_finish_launching(self):
                self.background_service.loop.call_later(60, self.poll)

            def did_receive_signal(self, signum):
                if signum == signal.SIGHUP:
                    self.reload()
    """

    @classmethod
    def main(cls, argv: list[str] | None = None):
        """Entry point for running this class directly, without bundle metadata.

        Usage:
            if __name__ == '__main__':
                MyService.main()
        """
        from background_service.launchers.launcher import main as launcher_main

        return launcher_main(argv, service_type=cls)


class ConstructionStyle(Enum):
    """How a principal type is built."""
    ARGUMENTS = "arguments"
    NO_ARGUMENTS = "no_arguments"


def _binds(signature: inspect.Signature, *args: Any) -> bool:
    try:
        signature.bind(*args)
    except TypeError:
        return False
    return True


def construction_style(cls: Any) -> ConstructionStyle | None:
    """Determine how ``cls`` can be constructed, or None if it cannot.

    Classes whose constructor takes one positional argument receive the
    argument list. Other classes that can be built without arguments are
    built that way, except BackgroundServiceInitializable subclasses, which
    must accept the argument list.
    """
    if not inspect.isclass(cls):
        return None

    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        # Builtins without introspectable signatures
        return None

    if _binds(signature, []):
        return ConstructionStyle.ARGUMENTS
    if issubclass(cls, BackgroundServiceInitializable):
        # Overrode __init__ without the argument list
        return None
    if _binds(signature):
        return ConstructionStyle.NO_ARGUMENTS
    return None


def is_delegate(obj: Any) -> bool:
    """Check whether an object satisfies the lifecycle-hook capability."""
    if isinstance(obj, BackgroundServiceDelegate):
        return True
    return any(callable(getattr(obj, name, None)) for name in HOOK_NAMES)


class DelegateAdapter:
    """Wraps any object, supplying no-op defaults for hooks it does not implement."""

    def __init__(self, target: Any):
        self.target = target

    def _hook(self, name: str):
        return getattr(self.target, name, None)

    def did_finish_launching(self) -> None:
        hook = self._hook("did_finish_launching")
        if callable(hook):
            hook()

    def will_terminate(self) -> None:
        hook = self._hook("will_terminate")
        if callable(hook):
            hook()

    def did_receive_signal(self, signum: int) -> None:
        hook = self._hook("did_receive_signal")
        if callable(hook):
            hook(signum)
