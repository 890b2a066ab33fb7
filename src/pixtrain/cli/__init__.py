"""Command-line interface modules for pixtrain sessions.

This package contains core execution logic, making scripts/ optional and deletable.
"""

from pixtrain.cli.run_session import run_session

__all__ = ['run_session']
