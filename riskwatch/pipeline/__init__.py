"""
RiskWatch update pipeline.

Components:
- dedup: Bounded ledger of processed (subject_id, update_marker) pairs
- subjects: In-memory subject projection and group networks
- orchestrator: Batch processing, per-subject fan-out, group anomaly pass
- source: Update sources (push queue, polled HTTP feed)
"""
