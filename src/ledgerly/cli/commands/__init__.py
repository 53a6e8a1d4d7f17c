"""CLI commands package."""

from . import jobs, server

__all__ = [
    'jobs',
    'server',
]
