"""Minimal service example - absolute bare minimum.

A plain class with an ``__init__(self, arguments)`` constructor and no hooks.
It only stops on SIGTERM.

Run standalone:
    python -m background_service.services.examples.minimal
"""
import logging

from background_service.base_service import service


@service('examples.minimal')
class MinimalService:
    """Simplest service - records its arguments and waits for SIGTERM."""

    def __init__(self, arguments):
        self.arguments = list(arguments)
        logging.getLogger("minimal").info(f"Started with {len(self.arguments)} arguments")


if __name__ == '__main__':
    from background_service.launchers.launcher import main
    main(service_type=MinimalService)
