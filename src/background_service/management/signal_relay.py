"""Signal relay: OS signal delivery as ordinary event loop callbacks.

Handlers are attached with ``loop.add_signal_handler``. The interpreter-level
handler it installs only writes the signal number to the loop's wakeup file
descriptor (self-pipe), so callbacks registered here never run in signal
handler context. They run on the loop thread like any other scheduled work.

A cancelled registration leaves its signal ignored, not restored to the
default disposition.
"""

import asyncio
import logging
import signal
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from background_service.management.service_registry import FatalConfigurationError


TERMINATION_SIGNAL = signal.SIGTERM
FORWARDED_SIGNALS = (
    signal.SIGHUP,
    signal.SIGINT,
    signal.SIGCHLD,
    signal.SIGUSR1,
    signal.SIGUSR2,
)


class SignalRegistrationError(FatalConfigurationError):
    """Raised when the event loop refuses a signal handler."""
    pass


def signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


@dataclass
class SignalRegistration:
    """One active signal handler."""
    signum: int
    callback: Callable[[int], None]
    loop: asyncio.AbstractEventLoop = field(repr=False)
    cancelled: bool = False

    def cancel(self) -> None:
        """Remove the handler from the loop and leave the signal ignored.

        Cancelling twice is a no-op.
        """
        if self.cancelled:
            return
        self.cancelled = True
        # Blocked while swapping so a delivery never sees the default disposition
        signal.pthread_sigmask(signal.SIG_BLOCK, {self.signum})
        try:
            if not self.loop.is_closed():
                self.loop.remove_signal_handler(self.signum)
            signal.signal(self.signum, signal.SIG_IGN)
        finally:
            signal.pthread_sigmask(signal.SIG_UNBLOCK, {self.signum})


class SignalRelay:
    """Collection of active signal registrations bound to one event loop.

    A registration for a signal number that already has one replaces it.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.logger = logging.getLogger("relay")
        self._registrations: dict[int, SignalRegistration] = {}

    @property
    def active(self) -> Mapping[int, SignalRegistration]:
        """Read-only view of active registrations keyed by signal number."""
        return MappingProxyType(self._registrations)

    def __len__(self) -> int:
        return len(self._registrations)

    def __contains__(self, signum: object) -> bool:
        return signum in self._registrations

    def register(self, signum: int, callback: Callable[[int], None]) -> SignalRegistration:
        """Route deliveries of ``signum`` to ``callback(signum)`` on the loop thread.

        Raises:
            SignalRegistrationError: If the loop cannot watch the signal
        """
        previous = self._registrations.pop(signum, None)
        if previous is not None:
            self.logger.warning(f"Replacing existing handler for {signal_name(signum)}")
            previous.cancel()

        registration = SignalRegistration(signum=signum, callback=callback, loop=self.loop)
        try:
            self.loop.add_signal_handler(signum, self._dispatch, registration)
        except (ValueError, RuntimeError, OSError, NotImplementedError) as e:
            raise SignalRegistrationError(
                f"Cannot register handler for {signal_name(signum)}: {e}"
            ) from e

        self._registrations[signum] = registration
        self.logger.debug(f"Watching {signal_name(signum)}")
        return registration

    def _dispatch(self, registration: SignalRegistration) -> None:
        if registration.cancelled:
            return
        self.logger.debug(f"Received {signal_name(registration.signum)}")
        try:
            registration.callback(registration.signum)
        except Exception as e:
            self.logger.error(
                f"Handler for {signal_name(registration.signum)} failed: {e}", exc_info=True
            )

    def cancel(self, signum: int) -> None:
        """Cancel the registration for one signal, if any."""
        registration = self._registrations.pop(signum, None)
        if registration is not None:
            registration.cancel()
            self.logger.debug(f"Stopped watching {signal_name(signum)}")

    def cancel_all(self) -> None:
        """Cancel every registration. The relay is empty afterwards."""
        for signum in list(self._registrations):
            self.cancel(signum)
