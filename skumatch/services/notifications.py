"""
Notifications — Slack webhook integration for job events.

Notification failure never blocks the job engine.
"""
import logging
import requests

from skumatch.config import SLACK_WEBHOOK_URL
from skumatch.services.circuit_breaker import get_breaker

logger = logging.getLogger('services.notifications')

_STATUS_LABELS = {
    'succeeded': 'Completed',
    'partial': 'Completed with errors',
    'failed': 'FAILED',
    'cancelled': 'Cancelled',
}


def notify_job_finished(job):
    """Post a job outcome summary to Slack."""
    if not SLACK_WEBHOOK_URL or job is None:
        return

    try:
        label = _STATUS_LABELS.get(job.status, job.status)
        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"SKU Match Job {label}",
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Rows:* {job.input_count or 0}"},
                    {"type": "mrkdwn", "text": f"*Resolved:* {job.resolved_count or 0}"},
                    {"type": "mrkdwn", "text": f"*Needs review:* {job.review_count or 0}"},
                    {"type": "mrkdwn", "text": f"*Unresolved:* {job.unresolved_count or 0}"},
                    {"type": "mrkdwn", "text": f"*Errors:* {job.error_count or 0}"},
                    {"type": "mrkdwn", "text": f"*Tenant:* {job.tenant_id}"},
                ]
            },
        ]

        if job.file_name:
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"File: {job.file_name}"}]
            })

        cb = get_breaker('slack')
        response = cb.call(requests.post, SLACK_WEBHOOK_URL, json={"blocks": blocks}, timeout=10)
        response.raise_for_status()
        logger.info("Job %s notification sent (%s)", job.id[:8], job.status)

    except Exception:
        logger.error("Failed to send notification for job %s", job.id[:8], exc_info=True)
