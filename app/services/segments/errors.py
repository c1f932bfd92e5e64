"""
Segmentation error taxonomy.

These are raised by the pure core (rules, compiler, reconciler) and by the
record store. They carry no HTTP knowledge; ``app.exceptions`` maps them to
RFC 7807 problem responses.
"""

from typing import Any, Optional


class SegmentError(Exception):
    """Base class for segmentation errors."""


class Unauthenticated(SegmentError):
    """No resolvable scope for the caller. Never retried automatically."""

    def __init__(self, detail: str = "Authentication required"):
        self.detail = detail
        super().__init__(detail)


class SegmentNotFound(SegmentError):
    """Segment absent or owned by another tenant (indistinguishable on purpose)."""

    def __init__(self, resource: str, resource_id: Any):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} with ID {resource_id} was not found")


class RuleValidationError(SegmentError):
    """
    A rule leaf (or group) is malformed or type-incompatible.

    Attributes:
        field: Field named by the offending leaf, if any
        operator: Operator named by the offending leaf, if any
        path: Position of the node in the rule tree, e.g. ``rules[1].rules[0]``
        reason: What is wrong with it
    """

    def __init__(
        self,
        reason: str,
        field: Optional[str] = None,
        operator: Optional[str] = None,
        path: str = "rules",
    ):
        self.reason = reason
        self.field = field
        self.operator = operator
        self.path = path
        super().__init__(self._format())

    def _format(self) -> str:
        leaf = []
        if self.field is not None:
            leaf.append(f"field '{self.field}'")
        if self.operator is not None:
            leaf.append(f"operator '{self.operator}'")
        where = f" ({', '.join(leaf)})" if leaf else ""
        return f"Invalid rule at {self.path}{where}: {self.reason}"

    def to_error_item(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "operator": self.operator,
            "path": self.path,
            "message": self.reason,
        }


class StoreFailure(SegmentError):
    """
    The record store failed to query or update.

    Retryable by re-invoking the whole operation. ``phase`` tells which step of
    an apply failed; no phase marker is persisted anywhere.
    """

    def __init__(self, detail: str, phase: Optional[str] = None):
        self.detail = detail
        self.phase = phase
        message = f"{detail} (phase: {phase})" if phase else detail
        super().__init__(message)

    def in_phase(self, phase: str) -> "StoreFailure":
        """Copy of this failure tagged with the apply phase it happened in."""
        return StoreFailure(self.detail, phase=phase)
