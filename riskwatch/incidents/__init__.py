"""
RiskWatch incident lifecycle.

Components:
- manager: Creation, priority, assignment, status transitions, evidence
- reports: Auto-generated report synthesis (number, address, jurisdiction, description)
- assignment: Nearest-responder lookup over a roster
- store: Persistence sink protocol and the SQL sink
"""
