"""Lifecycle manager: startup, run-until-terminated loop and orderly shutdown."""

import asyncio
import logging
import sys
from collections.abc import Callable
from enum import Enum
from typing import Any

from background_service.base_service import BackgroundServiceDelegate
from background_service.management.loop_driver import AsyncioLoopDriver
from background_service.management.service_holder import LifecycleError, ServiceHolder
from background_service.management.service_registry import FatalConfigurationError
from background_service.management.signal_relay import (
    FORWARDED_SIGNALS,
    TERMINATION_SIGNAL,
    SignalRegistrationError,
    SignalRelay,
    signal_name,
)


EXIT_SUCCESS = 0


class LifecycleState(Enum):
    """Lifecycle states. Transitions only move forward."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    TERMINATING = "terminating"
    TERMINATED = "terminated"

    def __str__(self) -> str:
        return self.value


_ORDER = list(LifecycleState)


class BackgroundService:
    """Headless replacement for a GUI application object.

    Owns the principal service instance, the signal relay and the event loop
    driver. Constructed by the process entry point and handed to the instance
    as ``instance.background_service``; there is no global default.

    Example:
        manager = BackgroundService()
        manager.run(MyService, sys.argv)  # does not return
    """

    def __init__(self, driver: Any = None, exit: Callable[[int], Any] = sys.exit):
        self.logger = logging.getLogger("bgsvc")
        self.driver = driver or AsyncioLoopDriver()
        self.relay = SignalRelay(self.driver.loop)
        self.holder = ServiceHolder()
        self._exit = exit
        self._state = LifecycleState.NOT_STARTED
        self._should_terminate = False

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def should_terminate(self) -> bool:
        return self._should_terminate

    @property
    def instance(self) -> Any:
        """The principal service instance, or None outside Running/Terminating."""
        return self.holder.instance

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """Event loop the instance can schedule its own work on."""
        return self.driver.loop

    def _transition(self, new_state: LifecycleState) -> None:
        if _ORDER.index(new_state) != _ORDER.index(self._state) + 1:
            raise LifecycleError(f"Invalid lifecycle transition {self._state} -> {new_state}")
        self.logger.debug(f"State {self._state} -> {new_state}")
        self._state = new_state

    def terminate(self) -> None:
        """Request shutdown. Observed after the current loop cycle; repeated calls are no-ops."""
        if self._should_terminate:
            return
        self.logger.info("Termination requested")
        self._should_terminate = True
        self.driver.wakeup()

    def run(self, service_type: type, arguments: list[str]):
        """Construct the principal instance and run it until termination.

        Ends by calling the exit function with a success status; with the
        default ``sys.exit`` this does not return.
        """
        if self._state is not LifecycleState.NOT_STARTED:
            raise LifecycleError(f"run() called in state {self._state}")

        try:
            self.holder.construct(service_type, arguments)
        except FatalConfigurationError:
            self.driver.close()
            raise
        except Exception as e:
            self.logger.error(f"Constructing {getattr(service_type, '__name__', service_type)} failed: {e}")
            self.driver.close()
            raise
        self._transition(LifecycleState.RUNNING)

        instance = self.holder.instance
        if isinstance(instance, BackgroundServiceDelegate):
            instance.background_service = self

        try:
            self._setup_signal_handlers()
        except SignalRegistrationError:
            self.relay.cancel_all()
            self.holder.release()
            self.driver.close()
            raise

        try:
            self.holder.delegate.did_finish_launching()
        except Exception as e:
            self.logger.error(f"did_finish_launching failed: {e}", exc_info=True)
            self.terminate()

        self.logger.info(f"{type(instance).__name__} running")
        self._run_loop()
        return self._shutdown()

    def _run_loop(self) -> None:
        # The flag is checked after every cycle, including the first
        while True:
            try:
                ok = self.driver.run_once()
            except Exception as e:
                self.logger.error(f"Event loop cycle failed: {e}", exc_info=True)
                ok = False

            if not ok:
                self.logger.error("Event loop cannot continue, terminating")
                self.terminate()

            if self._should_terminate:
                break

    def _shutdown(self):
        self._transition(LifecycleState.TERMINATING)

        self.relay.cancel_all()

        try:
            self.holder.delegate.will_terminate()
        except Exception as e:
            self.logger.error(f"will_terminate failed: {e}", exc_info=True)

        self.holder.release()
        self.driver.close()
        self._transition(LifecycleState.TERMINATED)
        self.logger.info("Background service terminated")

        return self._exit(EXIT_SUCCESS)

    def _setup_signal_handlers(self) -> None:
        """Watch SIGTERM always; forward the secondary set if the instance has hooks."""
        self.relay.register(TERMINATION_SIGNAL, self._on_termination_signal)

        if not self.holder.is_delegate:
            self.logger.debug("Instance has no lifecycle hooks, not forwarding signals")
            return

        for signum in FORWARDED_SIGNALS:
            self.relay.register(signum, self._forward_signal)

    def _on_termination_signal(self, signum: int) -> None:
        self.logger.info(f"Received {signal_name(signum)}")
        self.terminate()

    def _forward_signal(self, signum: int) -> None:
        try:
            self.holder.delegate.did_receive_signal(signum)
        finally:
            self.driver.wakeup()
