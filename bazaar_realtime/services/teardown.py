"""Teardown policies for the shared realtime connection.

A policy is told about every activation and deactivation and, once the
deactivation grace delay has passed, decides whether the consumer that
left was the last one.  It never touches the connection itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from bazaar_realtime.domain.enums import TeardownMode


class TeardownPolicy(ABC):
    """Strategy deciding when the held connection may be torn down."""

    @abstractmethod
    def on_activate(self, sequence: int) -> None:
        ...

    @abstractmethod
    def on_deactivate(self, sequence: int) -> None:
        ...

    @abstractmethod
    def should_teardown(self, sequence: int, latest: int) -> bool:
        """Called after the grace delay for a deactivated *sequence*.

        Args:
            sequence: The activation number being deactivated.
            latest: The most recent activation number issued so far.
        """
        ...

    def reset(self) -> None:
        """Forget all activations (after a forced disconnect)."""


class LatestActivationPolicy(TeardownPolicy):
    """Tear down when no newer activation happened since *sequence*.

    "Last mounted wins": an older consumer leaving never closes the socket,
    the newest one leaving always does, even if older ones are still around.
    Two consumers leaving within the same grace window can both see a stale
    ``latest`` and leave the connection open.
    """

    def on_activate(self, sequence: int) -> None:
        pass

    def on_deactivate(self, sequence: int) -> None:
        pass

    def should_teardown(self, sequence: int, latest: int) -> bool:
        return sequence == latest


class ReferenceCountPolicy(TeardownPolicy):
    """Tear down only once every activation has been deactivated.

    Live activations are tracked by sequence number, so deactivating the
    same activation twice is harmless.
    """

    def __init__(self) -> None:
        self._live: set[int] = set()

    @property
    def live_count(self) -> int:
        return len(self._live)

    def on_activate(self, sequence: int) -> None:
        self._live.add(sequence)

    def on_deactivate(self, sequence: int) -> None:
        self._live.discard(sequence)

    def should_teardown(self, sequence: int, latest: int) -> bool:
        return not self._live

    def reset(self) -> None:
        self._live.clear()


def policy_for(mode: TeardownMode) -> TeardownPolicy:
    if mode is TeardownMode.REFCOUNT:
        return ReferenceCountPolicy()
    return LatestActivationPolicy()
