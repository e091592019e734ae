"""Command-line interface (``strata``)."""

from strata.cli.app import app

__all__ = ["app"]
