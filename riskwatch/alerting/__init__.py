"""
RiskWatch operator notifications.

Components:
- schemas: Notification model and severities
- channels: In-app feed, generic JSON webhook, best-effort router
"""
