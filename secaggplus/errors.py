"""Exceptions raised by the SecAgg+ engine.

Structural errors (:class:`ProtocolStateError`, :class:`InvalidParameters`,
:class:`InsufficientShares`) always propagate to the caller.  Per-peer data
errors (:class:`DecryptionFailure`, :class:`MissingSharedSecret`) are raised
by the primitives but logged and skipped by :class:`~secaggplus.client.SecAggPlusClient`.
"""

from __future__ import annotations

from typing import Optional


class SecAggError(RuntimeError):
    pass


class ProtocolStateError(SecAggError):
    """An operation was invoked outside the stage it is valid in."""

    def __init__(self, operation: str, expected: object, actual: object) -> None:
        self.operation = operation
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{operation}() must be called in {_stage_name(expected)} stage, "
            f"current: {_stage_name(actual)}"
        )


class InvalidParameters(SecAggError, ValueError):
    pass


class InsufficientShares(SecAggError, ValueError):
    pass


class DecryptionFailure(SecAggError):
    """An encrypted share could not be authenticated or parsed."""

    def __init__(self, message: str, peer_index: Optional[int] = None) -> None:
        self.peer_index = peer_index
        super().__init__(message)


class MissingSharedSecret(SecAggError):
    """A share arrived from a peer whose public key was never registered."""

    def __init__(self, peer_index: int) -> None:
        self.peer_index = peer_index
        super().__init__(f"No shared secret for peer {peer_index}")


def _stage_name(stage: object) -> str:
    return getattr(stage, "name", str(stage))
