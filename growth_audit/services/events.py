"""
Event log helpers — append-only activity trail for leads, audits and simulations.
"""
import logging
from datetime import datetime
from typing import Optional

from growth_audit.config import EVENT_TYPES, SYSTEM_EVENT_TYPES
from growth_audit.errors import ValidationError
from growth_audit.services.repository import Repository, utcnow

logger = logging.getLogger('services.events')


def touch_lead(repository: Repository, lead_id: str, now: Optional[datetime] = None):
    """Refresh a lead's last_seen_at. Unknown leads are ignored."""
    if not lead_id or repository.get('lead', lead_id) is None:
        return None
    return repository.update('lead', lead_id, {'last_seen_at': now or utcnow()})


def log_event(repository: Repository, event_type: str, lead_id: Optional[str] = None,
              audit_run_id: Optional[str] = None, simulator_run_id: Optional[str] = None,
              payload: Optional[dict] = None, now: Optional[datetime] = None) -> dict:
    """
    Append one event. Lead-activity events also refresh the lead's last_seen_at;
    events the pipeline writes about itself (scoring, automation) do not.
    """
    if event_type not in EVENT_TYPES:
        raise ValidationError(f"Unknown event type: {event_type}", field='type')

    now = now or utcnow()
    event = repository.create('event', {
        'type': event_type,
        'lead_id': lead_id,
        'audit_run_id': audit_run_id,
        'simulator_run_id': simulator_run_id,
        'payload': payload or {},
        'created_at': now,
    })
    if lead_id and event_type not in SYSTEM_EVENT_TYPES:
        touch_lead(repository, lead_id, now)

    logger.debug("Event %s logged for lead %s", event_type, lead_id)
    return event
