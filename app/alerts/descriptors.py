"""Alert descriptors passed from the gatekeeper and webhooks to the dispatcher"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from app.models.alert import AlertSeverity, AlertType


class UsageAlertKind(str, enum.Enum):
    WARNING = "warning"
    OVERAGE = "overage"


class UsageResource(str, enum.Enum):
    VOICE_MINUTES = "voice_minutes"
    LOCATIONS = "locations"


@dataclass(frozen=True)
class AlertDescriptor:
    """Everything needed to persist and announce one alert"""
    organization_id: UUID
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    dedupe_key: Optional[str] = None
    stripe_event_id: Optional[str] = None
    stripe_invoice_id: Optional[str] = None
    amount_due: Optional[Decimal] = None
    currency: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UsageAlert:
    """A threshold crossing detected by a usage increment"""
    kind: UsageAlertKind
    resource: UsageResource
    organization_id: UUID
    current: int
    limit: int
    percent_used: float
    cycle_started_at: Optional[datetime] = None
    organization_name: Optional[str] = None

    @property
    def dedupe_key(self) -> str:
        # At most one alert per kind per billing cycle
        cycle = self.cycle_started_at.isoformat() if self.cycle_started_at else "initial"
        return f"usage:{self.resource.value}:{self.kind.value}:{self.organization_id}:{cycle}"

    def to_descriptor(self) -> AlertDescriptor:
        resource_label = "voice minutes" if self.resource == UsageResource.VOICE_MINUTES else "locations"
        percent = round(self.percent_used)

        if self.kind == UsageAlertKind.OVERAGE:
            alert_type = AlertType.USAGE_OVERAGE
            severity = AlertSeverity.ERROR
            title = "Usage Limit Exceeded"
            message = (
                f"Your organization has exceeded the {resource_label} limit "
                f"({self.current}/{self.limit}). Voice AI calls will be limited until you "
                f"upgrade or purchase additional minutes."
            )
        else:
            alert_type = AlertType.USAGE_WARNING
            severity = AlertSeverity.WARNING
            title = "Usage Warning"
            message = (
                f"Your organization has reached {percent}% of the {resource_label} limit "
                f"({self.current}/{self.limit}). Consider upgrading your plan or purchasing "
                f"additional minutes to avoid service interruption."
            )

        return AlertDescriptor(
            organization_id=self.organization_id,
            alert_type=alert_type,
            severity=severity,
            title=title,
            message=message,
            dedupe_key=self.dedupe_key,
            metadata={
                "kind": self.kind.value,
                "resource": self.resource.value,
                "current": self.current,
                "limit": self.limit,
                "percent_used": round(self.percent_used, 2),
            },
        )
