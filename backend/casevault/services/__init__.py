# Services package init
"""
CaseVault Backend - Services Layer
====================================

Service Inventory (leaves first):
    - CounterStore:              atomic per-namespace, per-year counters
    - SequentialCodeAllocator:   PREFIX-YY-NNN record codes
    - CategoryResolver:          get-or-create document categories
    - VersionCounter:            next version per (record, category)
    - storage_keys:              deterministic object keys (pure functions)
    - BucketResolver:            case type → bucket, read fallback chain
    - RecordService:             case/backlog creation, parent lookup
    - DocumentIngestPipeline:    upload state machine
    - DocumentService:           list, download, soft delete

Services take the AsyncSession per call and hold no request state, so the
module-level singletons are safe to share between concurrent requests.
"""
