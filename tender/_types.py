"""
Core types for tender.

Re-exports from kungfu/combinators + shared aliases.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Never

# Re-export from kungfu
from kungfu import Result, Ok, Error, LazyCoroResult

# Re-export from combinators
from combinators import LCR, NoError

# ═══════════════════════════════════════════════════════════════════════════════
# Lazy Computation Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type Lazy[T, E] = LazyCoroResult[T, E]
"""Lazy async computation that may fail."""

type Pure[T] = Lazy[T, Never]
"""Lazy computation that cannot fail."""

# ═══════════════════════════════════════════════════════════════════════════════
# Store Error — shared by every persistence adapter
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StoreError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    # Re-exports from combinators
    "LCR",
    "NoError",
    # Type aliases
    "Lazy",
    "Pure",
    # Persistence
    "StoreError",
)
