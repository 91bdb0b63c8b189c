"""
Automation trigger — hot leads get a follow-up message and a task.

maybe_trigger() reads the lead's stored score (it never rescores). Below the
hot threshold nothing is written. At or above it, a GeneratedMessage and a
high-priority follow_up AutomationTask are created, the lead is marked
"hot_followup_sent" and an auto_followup_triggered event is logged.

Re-triggering is governed by automation.retrigger in the policy:
  suppress → skip while the lead is already hot_followup_sent with a pending task
  always   → send again on every qualifying recomputation
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from growth_audit.config import COMPLETED, HOT_FOLLOWUP_STATUS
from growth_audit.database import serialise_value
from growth_audit.pipeline.followup import build_follow_up
from growth_audit.pipeline.policy import get_hot_threshold, get_retrigger_policy
from growth_audit.services.events import log_event
from growth_audit.services.repository import Repository, utcnow

logger = logging.getLogger('pipeline.automation')

BELOW_THRESHOLD = 'Lead score below HOT threshold.'
ALREADY_SENT = 'Follow-up already pending for this lead.'
TRIGGERED = 'HOT threshold reached; automation triggered.'


@dataclass
class TriggerResult:
    lead_id: str
    executed: bool
    reason: str
    lead_score: int
    last_activity_at: Optional[str]
    task_id: Optional[str] = None
    generated_message_id: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def store_follow_up(repository: Repository, lead: dict) -> dict:
    """Build a follow-up from the lead's latest audit and simulation and persist it."""
    latest_audit = repository.find_one('audit_run', lead_id=lead['id'], status=COMPLETED)
    latest_simulation = repository.find_one('simulator_run', lead_id=lead['id'])
    fields = build_follow_up(lead, latest_audit, latest_simulation)
    return repository.create('generated_message', fields)


def _has_pending_follow_up(repository, lead_id):
    return repository.find_one('automation_task', lead_id=lead_id,
                               type='follow_up', status='pending') is not None


def maybe_trigger(lead_id: str, repository: Repository,
                  now: Optional[datetime] = None) -> TriggerResult:
    lead = repository.require('lead', lead_id)
    score = lead.get('lead_score') or 0
    last_activity = lead.get('last_seen_at') or lead.get('updated_at')

    if score < get_hot_threshold():
        return TriggerResult(lead_id, False, BELOW_THRESHOLD, score, last_activity)

    if (get_retrigger_policy() == 'suppress'
            and lead.get('status') == HOT_FOLLOWUP_STATUS
            and _has_pending_follow_up(repository, lead_id)):
        logger.info("Lead %s already has a pending follow-up; not re-triggering", lead_id,
                    extra={'lead_id': lead_id})
        return TriggerResult(lead_id, False, ALREADY_SENT, score, last_activity)

    now = now or utcnow()
    message = store_follow_up(repository, lead)
    task = repository.create('automation_task', {
        'lead_id': lead_id,
        'type': 'follow_up',
        'priority': 'high',
        'status': 'pending',
        'title': f"Follow up with {lead.get('business_name') or message['domain']}",
        'generated_message_id': message['id'],
    })
    repository.update('lead', lead_id, {'status': HOT_FOLLOWUP_STATUS, 'last_seen_at': now})

    log_event(
        repository, 'auto_followup_triggered',
        lead_id=lead_id,
        audit_run_id=message.get('audit_run_id'),
        simulator_run_id=message.get('simulator_run_id'),
        payload={
            'lead_score': score,
            'last_activity_at': serialise_value(last_activity),
            'task_id': task['id'],
            'generated_message_id': message['id'],
            'status': HOT_FOLLOWUP_STATUS,
        },
        now=now,
    )
    logger.info("Lead %s is HOT (%d): follow-up task %s created", lead_id, score, task['id'],
                extra={'lead_id': lead_id})
    return TriggerResult(lead_id, True, TRIGGERED, score, last_activity,
                         task_id=task['id'], generated_message_id=message['id'])
