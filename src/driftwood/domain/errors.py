"""Error taxonomy for the reconciler.

Build-time and plan-time errors abort a cycle before any provider call.
Provider errors are node-scoped. State conflicts are fatal for the cycle and
are never resolved automatically.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from driftwood.domain.model import ResourceAddress
    from driftwood.domain.reconciliation.execute import ApplyReport


class ReconcilerError(Exception):
    """Base class for every error raised by the reconciler."""


class DocumentError(ReconcilerError):
    """Raised when a declarative document cannot be read or validated."""


class BuildError(ReconcilerError):
    """Raised when a document cannot be turned into a resource graph."""


class CycleError(BuildError):
    """Raised when resource dependencies form a cycle."""

    def __init__(self, cycle: Sequence[ResourceAddress]) -> None:
        self.cycle = tuple(cycle)
        path = " -> ".join(str(address) for address in (*self.cycle, self.cycle[0]))
        super().__init__(f"Dependency cycle detected: {path}")


class UnresolvedReferenceError(BuildError):
    """Raised when an expression references a variable or resource that does not exist."""

    def __init__(self, reference: str, *, source: str) -> None:
        self.reference = reference
        self.source = source
        super().__init__(f"{source} references unknown {reference!r}")


class PlanError(ReconcilerError):
    """Raised when the planner cannot produce a valid change list."""


class ProviderNotFoundError(PlanError):
    """Raised when no provider is registered for a resource type."""

    def __init__(self, resource_type: str) -> None:
        self.resource_type = resource_type
        super().__init__(f"No provider registered for resource type {resource_type!r}")


class SchemaValidationError(PlanError):
    """Raised when desired attributes do not satisfy the provider schema."""


class PreventDestroyError(PlanError):
    """Raised when a plan would delete or replace a node marked ``prevent_destroy``."""

    def __init__(self, address: ResourceAddress, *, action: str) -> None:
        self.address = address
        super().__init__(f"{address} has prevent_destroy set but the plan would {action} it")


class ProviderErrorKind(StrEnum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class ProviderError(ReconcilerError):
    """Raised by providers when a remote operation fails.

    Transient errors are retried by the executor; permanent errors fail the node.
    """

    def __init__(
        self, message: str, *, kind: ProviderErrorKind = ProviderErrorKind.PERMANENT
    ) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def transient(self) -> bool:
        return self.kind is ProviderErrorKind.TRANSIENT

    @classmethod
    def promote(cls, error: ProviderError, *, attempts: int) -> ProviderError:
        """Return a permanent error wrapping an exhausted transient one."""

        return cls(f"{error} (gave up after {attempts} attempts)", kind=ProviderErrorKind.PERMANENT)


class StateConflictError(ReconcilerError):
    """Raised when persisted state changed underneath us or cannot be decoded."""

    def __init__(self, message: str, *, report: ApplyReport | None = None) -> None:
        super().__init__(message)
        self.report = report
