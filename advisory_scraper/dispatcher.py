from __future__ import annotations

from typing import Sequence, Tuple

from .base import VendorStrategy


class VendorDispatcher:
    """Ordered, immutable registry of vendor strategies.

    Strategies are tried in the order given (most specific first); the last
    one must be a fallback that handles every URL, so select() always
    returns a strategy. Selection depends only on the registry and the URL.
    """

    def __init__(self, strategies: Sequence[VendorStrategy]) -> None:
        strategies = tuple(strategies)
        if not strategies:
            raise ValueError("at least one strategy is required")
        if not strategies[-1].fallback:
            raise ValueError(f"last strategy must be a fallback, got {strategies[-1]!r}")
        self._strategies: Tuple[VendorStrategy, ...] = strategies

    @property
    def strategies(self) -> Tuple[VendorStrategy, ...]:
        return self._strategies

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(s.name for s in self._strategies)

    def select(self, url: str) -> VendorStrategy:
        for strategy in self._strategies:
            if strategy.can_handle(url):
                return strategy
        # unreachable: the fallback handles everything
        return self._strategies[-1]
