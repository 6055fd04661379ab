"""
Mock infrastructure for CodeDrill testing.
Provides deterministic stand-ins for the code-execution sandbox.
"""

from .judge0_mocks import (
    judge0_handler,
    make_sandbox,
    unreachable_handler,
)

__all__ = [
    "judge0_handler",
    "make_sandbox",
    "unreachable_handler",
]
