"""
Document Control module.

Lifecycle (ISO 9001 style, lightweight):
- Documents are created as Draft (version 0.1) and may be submitted for review
- Approval activates a document and advances the major version (0.1 -> 1.0 -> 2.0)
- Superseded Active states and retirements are archived as immutable history snapshots
- Meaningful actions are recorded to the append-only audit trail
"""
