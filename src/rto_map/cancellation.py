"""
Cancellation tokens for async work tied to a map identity.
"""

from typing import Hashable, Optional


class CancellationToken:
    """
    Flag shared by every async operation started for one identity.

    The identity is usually ``(territory, district)``. When the identity
    changes the owner cancels the token and results arriving afterwards are
    discarded.
    """

    __slots__ = ('identity', '_cancelled')

    def __init__(self, identity: Optional[Hashable] = None):
        self.identity = identity
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def __repr__(self) -> str:
        state = 'cancelled' if self._cancelled else 'active'
        return f"CancellationToken({self.identity!r}, {state})"


def is_cancelled(token: Optional[CancellationToken]) -> bool:
    return token is not None and token.cancelled
