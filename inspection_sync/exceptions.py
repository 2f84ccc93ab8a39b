"""
Custom Exceptions for Inspection Sync
=====================================

Usage:
    from inspection_sync.exceptions import RemoteError

    if response.status_code >= 400:
        raise RemoteError("Failed to sync room inspection", response.status_code)

Replay errors never escape a sync pass: the engine catches them per record
and marks the record FAILED.
"""

from typing import Optional, Any, Dict


class InspectionSyncError(Exception):
    """Base exception for all inspection sync errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Local Storage Errors
# ============================================

class StorageError(InspectionSyncError):
    """Reading or writing a local record failed"""

    def __init__(self, name: str, reason: str):
        super().__init__(
            f"Local storage '{name}' failed: {reason}",
            code="STORAGE_ERROR",
            details={"record": name, "reason": reason}
        )


class DuplicateMutationError(InspectionSyncError):
    """A mutation with the same id is already queued"""

    def __init__(self, mutation_id: str):
        super().__init__(
            f"Mutation already queued: {mutation_id}",
            code="DUPLICATE_MUTATION",
            details={"mutation_id": mutation_id}
        )


# ============================================
# Replay Errors
# ============================================

class RemoteError(InspectionSyncError):
    """The inspection API answered with a non-success status"""

    def __init__(self, message: str, status_code: int, body: str = ""):
        super().__init__(
            f"{message} (HTTP {status_code})",
            code="REMOTE_ERROR",
            details={"status_code": status_code, "body": body[:500]}
        )
        self.status_code = status_code


class UnsupportedMutationError(InspectionSyncError):
    """No remote call exists for this kind/action combination"""

    def __init__(self, kind: str, action: str):
        super().__init__(
            f"Cannot replay {action} for {kind}",
            code="UNSUPPORTED_MUTATION",
            details={"kind": kind, "action": action}
        )


class InvalidPayloadError(InspectionSyncError):
    """A queued payload lacks a field the remote call needs"""

    def __init__(self, field_name: str):
        super().__init__(
            f"Queued payload is missing '{field_name}'",
            code="INVALID_PAYLOAD",
            details={"field": field_name}
        )


class PayloadDecodeError(InspectionSyncError):
    """An encoded photo payload could not be turned back into bytes"""

    def __init__(self, reason: str):
        super().__init__(
            f"Invalid encoded image: {reason}",
            code="PAYLOAD_DECODE_ERROR",
            details={"reason": reason}
        )
