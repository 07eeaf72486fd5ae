"""Launcher for bundle-packaged background services."""

from .launcher import launch, main, resolve_principal_type


__all__ = [
    'launch',
    'main',
    'resolve_principal_type',
]
