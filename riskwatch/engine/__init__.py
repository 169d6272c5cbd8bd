"""
RiskWatch scoring engine.

Components:
- risk_oracle: Per-location weather/crime/political risk with TTL caches and forecast
- features: Deterministic, total feature extraction from an update + context
- anomaly: Anomaly scoring (remote model path + local rule fallback), levels, factors
- correlation: Spatial cell grouping, group separation, group anomaly detection
- geofence: Static geofence set and per-subject zone transition tracking
"""
