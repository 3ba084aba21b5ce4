"""
s3_archive/errors.py — error taxonomy for the archive pipeline.

Traversal / resolution failures abort the run (QueryFailed).
Per-candidate failures (MigrationError subclasses) are captured by the batch
and never abort sibling candidates.
Recovery failures (RecoveryError subclasses) abort a single recovery only.
"""
from typing import Optional


class ArchiveError(Exception):
    """Base class for every error raised by the archive pipeline."""


class ConfigurationError(ArchiveError):
    """A required setting (archive base URL, bucket …) is missing."""


class QueryFailed(ArchiveError):
    """Collection traversal or candidate resolution failed."""


# ─── Migration ────────────────────────────────────────────────────────────────

class MigrationError(ArchiveError):
    kind = "MigrationError"

    def __init__(self, candidate, message: str) -> None:
        super().__init__(message)
        self.candidate = candidate


class OriginUnreadable(MigrationError):
    kind = "OriginUnreadable"


class StagingFailed(MigrationError):
    kind = "StagingFailed"


class RelocationFailed(MigrationError):
    kind = "RelocationFailed"


class OwnerRewriteFailed(MigrationError):
    kind = "OwnerRewriteFailed"


# ─── Recovery ─────────────────────────────────────────────────────────────────

class RecoveryError(ArchiveError):
    kind = "RecoveryError"

    def __init__(self, node_id: Optional[int], message: str) -> None:
        super().__init__(message)
        self.node_id = node_id


class NotArchived(RecoveryError):
    kind = "NotArchived"


class ArchiveUnreachable(RecoveryError):
    kind = "ArchiveUnreachable"


class AssetCreateFailed(RecoveryError):
    kind = "AssetCreateFailed"
