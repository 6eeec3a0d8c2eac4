"""Notification content for alerts: email, Slack and SMS"""

import html
from typing import Any, Dict, Tuple

from app.config import settings
from app.models.alert import AlertSeverity, AlertType, BillingAlert

SEVERITY_COLORS = {
    AlertSeverity.INFO.value: "#3b82f6",
    AlertSeverity.WARNING.value: "#f59e0b",
    AlertSeverity.ERROR.value: "#ef4444",
}

SEVERITY_EMOJI = {
    AlertSeverity.INFO.value: ":information_source:",
    AlertSeverity.WARNING.value: ":warning:",
    AlertSeverity.ERROR.value: ":rotating_light:",
}


def _billing_url() -> str:
    return f"{settings.app_url.rstrip('/')}/dashboard/billing"


def email_subject(alert: BillingAlert, organization_name: str) -> str:
    if alert.alert_type == AlertType.USAGE_OVERAGE.value:
        return f"[URGENT] Voice minute limit exceeded - {organization_name}"
    if alert.alert_type == AlertType.USAGE_WARNING.value:
        return f"Voice minute usage warning - {organization_name}"
    return f"{alert.title} - {organization_name}"


def render_email(alert: BillingAlert, organization_name: str) -> Tuple[str, str]:
    """Build (subject, html) for an alert email"""
    color = SEVERITY_COLORS.get(alert.severity, "#3b82f6")
    metadata = alert.metadata_json or {}

    usage_block = ""
    if "current" in metadata and "limit" in metadata:
        usage_block = (
            '<div style="background: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0;">'
            f'<p style="margin: 0;"><strong>Current Usage:</strong> {metadata["current"]} / {metadata["limit"]}</p>'
            f'<p style="margin: 8px 0 0;"><strong>Percent Used:</strong> {round(metadata.get("percent_used", 0))}%</p>'
            "</div>"
        )

    button_label = "Buy More Minutes" if alert.alert_type == AlertType.USAGE_OVERAGE.value else "View Billing"

    body = (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: {color};">{html.escape(alert.title)}</h2>'
        f"<p>{html.escape(organization_name)}: {html.escape(alert.message)}</p>"
        f"{usage_block}"
        f'<a href="{_billing_url()}" style="display: inline-block; background: #3b82f6; color: white; '
        f'padding: 12px 24px; border-radius: 6px; text-decoration: none; margin-top: 16px;">'
        f"{button_label}</a>"
        "</div>"
    )
    return email_subject(alert, organization_name), body


def slack_payload(alert: BillingAlert, organization_name: str) -> Dict[str, Any]:
    emoji = SEVERITY_EMOJI.get(alert.severity, ":bell:")
    metadata = alert.metadata_json or {}

    fields = [
        {"title": "Organization", "value": organization_name, "short": True},
        {"title": "Alert Type", "value": alert.alert_type.upper(), "short": True},
    ]
    if "current" in metadata and "limit" in metadata:
        fields.append({"title": "Resource", "value": metadata.get("resource", ""), "short": True})
        fields.append({
            "title": "Usage",
            "value": f"{metadata['current']} / {metadata['limit']} ({round(metadata.get('percent_used', 0))}%)",
            "short": True,
        })

    return {
        "text": f"{emoji} {alert.title}: {organization_name}",
        "attachments": [
            {
                "color": SEVERITY_COLORS.get(alert.severity, "#808080"),
                "text": alert.message,
                "fields": fields,
                "footer": f"Alert ID: {alert.id}",
            }
        ],
    }


def sms_body(alert: BillingAlert, organization_name: str) -> str:
    return f"VECTERAI alert for {organization_name}: {alert.title}. {alert.message} {_billing_url()}"
