"""Capability interface implemented by anything that can hold roles."""

from __future__ import annotations

from typing import Protocol, Union, runtime_checkable


@runtime_checkable
class Authorizable(Protocol):
    """An actor (user or service identity) the engine can authorize.

    Actors are owned and persisted outside of rolegate; the engine only ever
    needs a stable lookup key for them.
    """

    def get_auth_identifier(self) -> Union[int, str]:
        """Return the actor's stable identity."""
        ...
