"""
Notification Schemas.

A notification is a fire-and-forget `(severity, message)` for the
operations desk, with optional references back to the subject or incident
that raised it.
"""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field


class NotificationSeverity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class NotificationKind(StrEnum):
    INCIDENT = "incident"
    ANOMALY = "anomaly"
    GROUP_ANOMALY = "group_anomaly"
    ZONE_ENTRY = "zone_entry"
    SYSTEM = "system"


class Notification(BaseModel):
    notification_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    severity: NotificationSeverity
    message: str
    kind: NotificationKind = NotificationKind.SYSTEM
    subject_id: Optional[str] = None
    incident_id: Optional[str] = None
    created_at: datetime
