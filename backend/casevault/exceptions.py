"""
CaseVault Backend - Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for identifier allocation, category
       resolution, versioning, and object storage.
How:   Each exception carries a user-facing message and a context dict.
       Global handlers (registered in main.py) log the context server-side
       and return a structured JSON error with the mapped status code.
Who:   Raised by services and storage backends; caught by global handlers.

Exception Hierarchy:
    CaseVaultError (base)
    ├── ValidationError              → 400 Bad Request
    ├── NotFoundError                → 404 Not Found (read-path exhaustion)
    │   └── ParentNotFoundError      → 404 Not Found
    ├── MissingClassificationError   → 422 Unprocessable Entity
    ├── StoreError                   → 500 (relational store unavailable)
    ├── CategoryResolutionError      → 500
    ├── VersionQueryError            → 500
    ├── ObjectStoreError             → 502 (raised by storage backends)
    │   └── ObjectNotFoundError      → 404
    ├── UploadError                  → 502 (pipeline: object write failed)
    └── MetadataPersistError         → 500 (object written, row not; reconcile)

Pipeline failures:
    Errors raised by DocumentIngestPipeline are `IngestFailure` subclasses.
    They record the pipeline `state` reached before failing, and their context
    holds everything an operator needs to find an orphaned object: parent id,
    classification id, category id, version, bucket and storage key.
"""

from typing import Any, Dict, Iterable, Optional


class CaseVaultError(Exception):
    """
    Base exception for all CaseVault application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CaseVaultError):
    """Raised when client input fails validation (empty file, size exceeded...)."""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(CaseVaultError):
    """
    Raised when a requested resource does not exist.

    The download path raises it after every candidate bucket was tried;
    `tried_buckets` then lists them in order.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        tried_buckets: Optional[Iterable[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        self.tried_buckets = list(tried_buckets or [])
        if self.tried_buckets:
            ctx["tried_buckets"] = self.tried_buckets
            message = f"{message} (tried buckets: {', '.join(self.tried_buckets)})"
        super().__init__(message=message, context=ctx)


class StoreError(CaseVaultError):
    """
    Raised when the relational store is unreachable or rejects a write.

    Callers must not assume a code was issued when this is raised.
    """

    def __init__(
        self,
        message: str = "The record store is unavailable. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ObjectStoreError(CaseVaultError):
    """Raised by object store backends when a put/get/delete/bucket call fails."""

    def __init__(
        self,
        message: str = "Object storage operation failed",
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if bucket:
            ctx["bucket"] = bucket
        if key:
            ctx["key"] = key
        super().__init__(message=message, context=ctx)
        self.bucket = bucket
        self.key = key


class ObjectNotFoundError(ObjectStoreError):
    """Raised by `ObjectStore.get` when the bucket or the key does not exist."""

    def __init__(
        self,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=f"Object '{key}' not found in bucket '{bucket}'",
            bucket=bucket,
            key=key,
            context=context,
        )


# ══════════════════════════════════════════════════════════════════════════
# Pipeline failures
# ══════════════════════════════════════════════════════════════════════════

class IngestFailure(CaseVaultError):
    """
    Base for errors that end a document ingest in the FAILED state.

    Attributes:
        state:    Last state the pipeline reached before failing
                  (an IngestState value, stored as its string name).
    """

    default_message = "Document upload failed"

    def __init__(
        self,
        message: Optional[str] = None,
        state: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if state:
            ctx["state"] = state
        super().__init__(message=message or self.default_message, context=ctx)
        self.state = state


class ParentNotFoundError(NotFoundError, IngestFailure):
    """The case or backlog record a document targets is missing or deleted."""

    def __init__(
        self,
        parent_id: str,
        state: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["parent_id"] = parent_id
        if state:
            ctx["state"] = state
        NotFoundError.__init__(self, resource="record", resource_id=parent_id, context=ctx)
        self.state = state
        self.parent_id = parent_id


class MissingClassificationError(IngestFailure):
    """No active case type anchors the category; nothing may be uploaded."""

    default_message = "The record has no valid case type to file documents under"


class CategoryResolutionError(IngestFailure):
    default_message = "Could not resolve a document category"


class VersionQueryError(IngestFailure):
    default_message = "Could not determine the next document version"


class UploadError(IngestFailure):
    """Object store write failed; no metadata row was written."""

    default_message = "Failed to store the uploaded document. Please try again."


class MetadataPersistError(IngestFailure):
    """
    Metadata insert failed after the object was uploaded.

    The object is left in storage (unless orphan cleanup is enabled), so this
    marks a storage/metadata inconsistency for operator reconciliation, not a
    user error. Context carries bucket and storage_key of the orphan.
    """

    default_message = "The document was stored but could not be recorded. Support has been notified."
