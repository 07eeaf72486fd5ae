"""Hello World service - canonical template for background services.

Logs a message periodically, reports its uptime on SIGUSR1 and resets its
counter on SIGHUP. Stops on SIGTERM like every background service.

Run standalone:
    python -m background_service.services.hello_world --interval 2

Run from a bundle (bundle.yaml):
    principal_class: hello_world
"""

import argparse
import logging
import signal
import time

from background_service.base_service import BackgroundServicable, service


@service('hello_world')
class HelloWorldService(BackgroundServicable):
    """Simple service that logs a message periodically."""

    def __init__(self, arguments: list[str]):
        super().__init__(arguments)
        self.logger = logging.getLogger("hello")

        parser = argparse.ArgumentParser(add_help=False, allow_abbrev=False)
        parser.add_argument("--interval", type=float, default=5.0)
        parser.add_argument("--message", type=str, default="Hello World!")
        options, _ = parser.parse_known_args(self.arguments[1:])

        self.interval = options.interval
        self.message = options.message
        self.counter = 0
        self.started_at: float | None = None
        self._timer = None

    def did_finish_launching(self):
        self.started_at = time.monotonic()
        self.logger.info(f"Hello World service ready with {self.interval}s interval")
        self._schedule()

    def _schedule(self):
        self._timer = self.background_service.loop.call_later(self.interval, self._tick)

    def _tick(self):
        self.counter += 1
        self.logger.info(f"{self.message} (#{self.counter})")
        self._schedule()

    def did_receive_signal(self, signum: int):
        if signum == signal.SIGHUP:
            self.logger.info("SIGHUP received, resetting counter")
            self.counter = 0
        elif signum == signal.SIGUSR1:
            uptime = time.monotonic() - (self.started_at or time.monotonic())
            self.logger.info(f"Up for {uptime:.1f}s, {self.counter} messages")
        elif signum == signal.SIGINT:
            self.logger.info("SIGINT received, stopping")
            self.request_termination()

    def will_terminate(self):
        if self._timer is not None:
            self._timer.cancel()
        self.logger.info("Hello World service cleanup complete")


if __name__ == '__main__':
    HelloWorldService.main()
