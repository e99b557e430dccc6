from __future__ import annotations


class EngineError(Exception):
    """Base class for errors raised by the streak engine."""


class NotFoundError(EngineError):
    """A referenced habit, user or achievement id does not exist in the catalog."""

    def __init__(self, kind: str, ident: str) -> None:
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


class PersistenceFailure(EngineError):
    """The record store rejected a read or write. Nothing from the action was applied."""


class ConsistencyViolation(EngineError):
    """Stored data breaks an invariant the engine relies on.

    Never repaired automatically; the offending records are left untouched so
    they can be inspected.
    """
