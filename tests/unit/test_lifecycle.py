"""Lifecycle manager tests.

Verify the startup order, the run/terminate state machine and that every
termination trigger converges on the same teardown sequence:
- explicit terminate() call
- SIGTERM delivery
- event loop failure
"""

import os
import signal

import pytest

from background_service.management.lifecycle import BackgroundService, LifecycleState
from background_service.management.loop_driver import AsyncioLoopDriver
from background_service.management.service_holder import LifecycleError
from background_service.management.service_registry import NotConstructibleError
from background_service.management.signal_relay import FORWARDED_SIGNALS, TERMINATION_SIGNAL
from background_service.base_service import BackgroundServicable
from tests.helpers.scripted_driver import ScriptedDriver, send, tick
from tests.services.mock_services import (
    DuckTypedService,
    FailingInitService,
    MismatchedInitService,
    NeedsTwoArguments,
    NoArgumentService,
    PlainService,
    RecordingService,
)


ALL_SIGNALS = sorted(int(s) for s in (TERMINATION_SIGNAL, *FORWARDED_SIGNALS))


def make_manager(driver, exits):
    manager = BackgroundService(driver=driver)
    manager._exit = lambda code: exits.append(
        (code, manager.state, manager.instance, len(manager.relay))
    )
    return manager


def lifecycle_only(events):
    return [e for e in events if e[0] not in ("cycle", "cycle_failed", "cycle_raised")]


@pytest.mark.parametrize("arguments", [
    [],
    ["prog"],
    ["prog", "--verbose", "input.txt", "--", "-x"],
    ["prog", "zażółć", "", "  spaced  "],
])
def test_instance_records_startup_arguments(events, exits, arguments):
    """Test that the instance is constructed with exactly the startup arguments, in order."""
    manager = None
    driver = ScriptedDriver([lambda d: manager.terminate()], events)
    manager = make_manager(driver, exits)

    manager.run(RecordingService, arguments)

    assert events[0] == ("init", arguments)


def test_finished_launching_fires_once_before_first_cycle(events, exits):
    """Test hook order: construction, signal registration, launch hook, then cycles."""
    manager = None
    driver = ScriptedDriver([tick, lambda d: manager.terminate()], events)
    manager = make_manager(driver, exits)

    manager.run(RecordingService, ["prog"])

    launched = [e for e in events if e[0] == "launched"]
    assert launched == [("launched", LifecycleState.RUNNING, ALL_SIGNALS, 0)]
    assert events.index(launched[0]) == 1
    assert events[2] == ("cycle", 1)


def _explicit(request_termination, events):
    return ScriptedDriver([tick, lambda d: request_termination()], events)


def _sigterm(request_termination, events):
    return ScriptedDriver([tick, send(signal.SIGTERM)], events)


def _loop_failure(request_termination, events):
    return ScriptedDriver([tick], events, fail_at=1)


def _loop_exception(request_termination, events):
    return ScriptedDriver([tick], events, raise_at=1)


@pytest.mark.parametrize("make_driver", [_explicit, _sigterm, _loop_failure, _loop_exception])
def test_all_termination_triggers_share_teardown(events, exits, make_driver):
    """Test that every trigger yields the same observable shutdown sequence."""
    manager = None
    driver = make_driver(lambda: manager.terminate(), events)
    manager = make_manager(driver, exits)

    result = manager.run(RecordingService, ["prog", "--flag"])

    assert result is None
    assert lifecycle_only(events) == [
        ("init", ["prog", "--flag"]),
        ("launched", LifecycleState.RUNNING, ALL_SIGNALS, 0),
        ("will_terminate", LifecycleState.TERMINATING, 0, True),
    ]
    assert exits == [(0, LifecycleState.TERMINATED, None, 0)]
    assert len(manager.relay) == 0
    assert driver.closed
    assert driver.loop.is_closed()
    assert not driver.exhausted


def test_double_termination_request_shuts_down_once(events, exits):
    """Test that terminate() twice in a row runs the shutdown sequence once."""
    manager = None

    def terminate_twice(driver):
        manager.terminate()
        manager.terminate()

    driver = ScriptedDriver([terminate_twice], events)
    manager = make_manager(driver, exits)

    manager.run(RecordingService, ["prog"])

    assert [e[0] for e in events].count("will_terminate") == 1
    assert len(exits) == 1
    assert driver.cycles == 1


def test_termination_requested_during_launch(events, exits):
    """Test that a request from did_finish_launching is observed after one cycle."""
    driver = ScriptedDriver([lambda d: None], events)
    manager = make_manager(driver, exits)

    manager.run(RecordingService, ["prog", "--terminate-on-launch"])

    assert driver.cycles == 1
    assert driver.timed_out == 0
    assert exits[0][0] == 0


@pytest.mark.parametrize("signum", FORWARDED_SIGNALS, ids=lambda s: s.name)
def test_secondary_signal_forwarded_once(events, exits, signum):
    """Test that each secondary signal reaches the hook once, between loop cycles."""
    manager = None
    driver = ScriptedDriver([send(signum), lambda d: manager.terminate()], events)
    manager = make_manager(driver, exits)

    manager.run(RecordingService, ["prog"])

    received = [e for e in events if e[0] == "signal"]
    assert received == [("signal", int(signum), 0)]
    assert events.index(received[0]) < events.index(("cycle", 1))
    assert driver.timed_out == 0
    assert exits[0][0] == 0


def test_multiple_deliveries_are_serialized_with_cycles(events, exits):
    """Test that each delivery is handled in its own cycle, in order."""
    manager = None
    driver = ScriptedDriver(
        [send(signal.SIGUSR1), send(signal.SIGUSR1), send(signal.SIGUSR2), lambda d: manager.terminate()],
        events,
    )
    manager = make_manager(driver, exits)

    manager.run(RecordingService, ["prog"])

    assert [e for e in events if e[0] in ("signal", "cycle")][:6] == [
        ("signal", int(signal.SIGUSR1), 0),
        ("cycle", 1),
        ("signal", int(signal.SIGUSR1), 1),
        ("cycle", 2),
        ("signal", int(signal.SIGUSR2), 2),
        ("cycle", 3),
    ]


def test_hook_can_request_termination(events, exits):
    """Test that a forwarded signal hook can stop the service."""
    driver = ScriptedDriver([send(signal.SIGHUP)], events)
    manager = make_manager(driver, exits)

    manager.run(RecordingService, ["prog", "--terminate-on-signal"])

    assert ("signal", int(signal.SIGHUP), 0) in events
    assert not driver.exhausted
    assert exits[0][0] == 0


def test_instance_without_hooks_only_watches_sigterm(events, exits):
    """Test that secondary signals are not registered for hookless instances."""
    seen = []
    manager = None

    def inspect_relay(driver):
        seen.append(sorted(int(s) for s in manager.relay.active))
        driver.wakeup()

    driver = ScriptedDriver([inspect_relay, send(signal.SIGTERM)], events)
    manager = make_manager(driver, exits)

    manager.run(PlainService, ["prog"])

    assert seen == [[int(signal.SIGTERM)]]
    assert events[0] == ("init", ["prog"])
    assert exits == [(0, LifecycleState.TERMINATED, None, 0)]


def test_duck_typed_hooks_are_used(events, exits):
    """Test that hooks implemented by name are called with no-op defaults for the rest."""
    manager = None
    driver = ScriptedDriver([send(signal.SIGUSR1), lambda d: manager.terminate()], events)
    manager = make_manager(driver, exits)

    manager.run(DuckTypedService, ["prog"])

    assert ("duck_will_terminate",) in events
    assert driver.timed_out == 0


def test_type_constructible_without_arguments(events, exits):
    """Test the fallback for types that only have a no-argument constructor."""
    manager = None
    driver = ScriptedDriver([lambda d: manager.terminate()], events)
    manager = make_manager(driver, exits)

    manager.run(NoArgumentService, ["prog"])

    assert events[0] == ("init_no_args",)
    assert exits[0][0] == 0


def test_not_constructible_type_never_starts(events, exits):
    """Test that a type failing the construction capability leaves no trace."""
    driver = ScriptedDriver([], events)
    manager = make_manager(driver, exits)

    with pytest.raises(NotConstructibleError):
        manager.run(NeedsTwoArguments, ["prog"])

    assert events == []
    assert exits == []
    assert manager.state is LifecycleState.NOT_STARTED
    assert manager.instance is None
    assert len(manager.relay) == 0


@pytest.mark.parametrize("service_type", [NeedsTwoArguments, MismatchedInitService])
def test_not_constructible_type_closes_loop(events, exits, service_type):
    """Test that a rejected type, including a subclass with the wrong __init__, closes the loop."""
    driver = ScriptedDriver([], events)
    manager = make_manager(driver, exits)

    with pytest.raises(NotConstructibleError):
        manager.run(service_type, ["prog"])

    assert events == []
    assert driver.closed
    assert driver.loop.is_closed()


def test_failing_constructor_closes_loop(events, exits):
    """Test that an exception from the service constructor propagates after closing the loop."""
    driver = ScriptedDriver([], events)
    manager = make_manager(driver, exits)

    with pytest.raises(RuntimeError, match="cannot start"):
        manager.run(FailingInitService, ["prog"])

    assert driver.closed
    assert exits == []
    assert manager.state is LifecycleState.NOT_STARTED
    assert manager.instance is None


def test_failing_launch_hook_shuts_down_gracefully(events, exits):
    """Test that an exception in did_finish_launching becomes a termination request."""
    driver = ScriptedDriver([lambda d: None], events)
    manager = make_manager(driver, exits)

    manager.run(RecordingService, ["prog", "--fail-on-launch"])

    assert [e[0] for e in lifecycle_only(events)] == ["init", "launched", "will_terminate"]
    assert exits[0][0] == 0


def test_default_exit_is_success_status(events):
    """Test that the default exit path raises SystemExit with status 0."""
    manager = None
    driver = ScriptedDriver([lambda d: manager.terminate()], events)
    manager = BackgroundService(driver=driver)

    with pytest.raises(SystemExit) as exc_info:
        manager.run(RecordingService, ["prog"])

    assert exc_info.value.code == 0
    assert manager.state is LifecycleState.TERMINATED


def test_state_never_regresses(events, exits):
    """Test that a finished manager cannot be run again."""
    manager = None
    driver = ScriptedDriver([lambda d: manager.terminate()], events)
    manager = make_manager(driver, exits)
    assert manager.state is LifecycleState.NOT_STARTED

    manager.run(RecordingService, ["prog"])
    assert manager.state is LifecycleState.TERMINATED

    with pytest.raises(LifecycleError):
        manager.run(RecordingService, ["prog"])
    with pytest.raises(LifecycleError):
        manager._transition(LifecycleState.RUNNING)


def test_monitored_signals_ignored_after_shutdown(events, exits):
    """Test that no handler survives teardown and monitored signals are left ignored."""
    manager = None
    driver = ScriptedDriver([lambda d: manager.terminate()], events)
    manager = make_manager(driver, exits)

    manager.run(RecordingService, ["prog"])

    for signum in ALL_SIGNALS:
        assert signal.getsignal(signum) == signal.SIG_IGN


class SignalledDuringTeardown(BackgroundServicable):
    """Sends itself monitored signals from will_terminate."""

    cleaned_up = False

    def will_terminate(self):
        for signum in (signal.SIGINT, signal.SIGTERM, signal.SIGHUP):
            os.kill(os.getpid(), signum)
        SignalledDuringTeardown.cleaned_up = True


@pytest.mark.parametrize("trigger", ["explicit", "sigterm"])
def test_signals_during_will_terminate_do_not_interrupt_teardown(exits, trigger):
    """Test that SIGINT/SIGTERM arriving during will_terminate leave teardown intact."""
    SignalledDuringTeardown.cleaned_up = False
    manager = None
    step = (lambda d: manager.terminate()) if trigger == "explicit" else send(signal.SIGTERM)
    driver = ScriptedDriver([step])
    manager = make_manager(driver, exits)

    manager.run(SignalledDuringTeardown, ["prog"])

    assert exits == [(0, LifecycleState.TERMINATED, None, 0)]
    assert SignalledDuringTeardown.cleaned_up
    assert manager.holder.instance is None
    assert driver.closed


class TimerService(BackgroundServicable):
    """Schedules its own work on the manager's loop and stops from it."""

    fired = 0

    def did_finish_launching(self):
        self.background_service.loop.call_later(0.01, self._fire)

    def _fire(self):
        TimerService.fired += 1
        self.request_termination()


def test_service_work_runs_on_manager_loop(exits):
    """Test that timers scheduled by the service run inside loop cycles."""
    TimerService.fired = 0
    driver = AsyncioLoopDriver()
    manager = make_manager(driver, exits)

    manager.run(TimerService, ["prog"])

    assert TimerService.fired == 1
    assert driver.cycles == 1
    assert exits[0][0] == 0
