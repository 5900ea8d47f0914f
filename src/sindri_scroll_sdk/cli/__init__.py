"""
Command line entry points for the Sindri cloud prover.
"""

from .main import app

__all__ = ["app"]
