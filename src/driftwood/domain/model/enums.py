"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class ResourceType(StrEnum):
    """Resource types shipped with the built-in provider catalog."""

    STORAGE_BUCKET = "storage_bucket"
    ACCESS_POLICY = "access_policy"
    CERTIFICATE = "certificate"
    CDN_DISTRIBUTION = "cdn_distribution"
    DNS_RECORD = "dns_record"


class ActionKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "noop"


class NodeStatus(StrEnum):
    """Execution state of one change action.

    ``APPLIED``, ``FAILED``, ``BLOCKED`` and ``CANCELLED`` are terminal.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    APPLIED = "applied"
    FAILED = "failed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self not in {NodeStatus.PENDING, NodeStatus.IN_PROGRESS}
