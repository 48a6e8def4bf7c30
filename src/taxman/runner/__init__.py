"""
CLI runner module.

Provides commands:
- init: Write a default config file
- evaluate: Classify transactions
- route: Show provider routing for a region
- status: Show connector status
- post: Post accepted decisions as drafts
- queue: List drafts awaiting review
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
