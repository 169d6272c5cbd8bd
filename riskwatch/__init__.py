"""
RiskWatch: Subject Risk Scoring & Incident Pipeline.

Architecture:
    riskwatch/
    ├── api/             # FastAPI routers (operations desk HTTP surface)
    ├── db/              # SQLAlchemy incident persistence sink
    ├── schemas/         # Pydantic models (updates, risk, anomaly, incidents)
    ├── services/        # TTL caches, resilience, external provider clients
    ├── engine/          # Risk oracle, features, anomaly scorer, correlator, geofences
    ├── incidents/       # Incident lifecycle (creation, reports, assignment, status)
    ├── alerting/        # Notification schemas and channels
    └── pipeline/        # Dedup ledger, subject projection, orchestrator, sources

Module Boundaries:
    - The Incident Lifecycle Manager is the ONLY writer of incident state
    - The Orchestrator owns the dedup ledger and per-run caches
    - External providers never fail the pipeline; they degrade to defaults
    - Services are built once in container.py and passed by reference

Data Flow:
    Update source → Orchestrator → Dedup → Risk Oracle + Area Correlator
    → Anomaly Scorer → Threshold → Incident Manager → Store + Notifications
    Geofence watcher runs on the same stream, independently of scoring.

Version: 1.0.0
"""

__version__ = "1.0.0"
