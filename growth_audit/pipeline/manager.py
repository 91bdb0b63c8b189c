"""
Pipeline Manager — the external Python interface of the growth audit service.

  start_scan → ScanOrchestrator (thread pool) → AuditRun COMPLETED | FAILED
  recompute_lead_score → score_lead → maybe_trigger → follow-up message + task

Routes call these functions and nothing below them. Every function resolves
the process-wide repository, so an unconfigured store surfaces here as
NotConfiguredError.
"""
import logging
from datetime import datetime
from typing import Optional

from growth_audit.config import QUEUED, TERMINAL_STATUSES
from growth_audit.errors import NotConfiguredError, NotFoundError
from growth_audit.pipeline.automation import maybe_trigger, store_follow_up
from growth_audit.pipeline.lead_score import score_lead
from growth_audit.pipeline.orchestrator import ScanOrchestrator, build_job_tracker, INTAKE_PROGRESS
from growth_audit.pipeline.simulator import normalise_inputs, run_simulator
from growth_audit.services.events import log_event
from growth_audit.services.intake import normalise_website_url, validate_lead_context
from growth_audit.services.repository import get_repository, new_id, utcnow

logger = logging.getLogger('pipeline.manager')


# ── Lazy orchestrator (thread pool is only started on first scan) ─────────────

_orchestrator = None


def _get_orchestrator() -> ScanOrchestrator:
    global _orchestrator
    repository = get_repository()
    if _orchestrator is None or _orchestrator.repository is not repository:
        _orchestrator = ScanOrchestrator(repository, build_job_tracker())
    return _orchestrator


def set_orchestrator(orchestrator: Optional[ScanOrchestrator]):
    global _orchestrator
    _orchestrator = orchestrator


# ── Scans ─────────────────────────────────────────────────────────────────────

def _upsert_lead(repository, fields: dict, url: str) -> dict:
    """One lead per email address; leads without an email are always new."""
    fields = dict(fields, website_url=url)
    existing = repository.find_one('lead', email=fields['email']) if fields['email'] else None
    if existing:
        return repository.update('lead', existing['id'], fields)
    return repository.create('lead', dict(fields, status='new'))


def _scan_summary(run: dict) -> dict:
    return {
        'lead_id': run['lead_id'],
        'scan_id': run['id'],
        'report_id': run['report_id'],
        'status': run['status'],
        'progress': run['progress'],
    }


def start_scan(url: str, lead_context: dict, report_id: Optional[str] = None) -> dict:
    """
    Validate intake, upsert the lead, create the AuditRun and enqueue it.
    Returns immediately with the QUEUED run.

    A report id whose run is still in flight returns that run unchanged.
    A report id whose run has finished gets a new run (new scan id,
    attempt + 1); the finished run is left as it was apart from
    superseded_by, so polling its scan id never sees it move backwards.
    """
    url = normalise_website_url(url)
    lead_fields = validate_lead_context(lead_context)
    repository = get_repository()

    existing = (repository.find_one('audit_run', report_id=report_id, superseded_by=None)
                if report_id else None)
    if existing and existing['status'] not in TERMINAL_STATUSES:
        logger.info("Report %s already has scan %s in flight", report_id, existing['id'],
                    extra={'report_id': report_id, 'scan_id': existing['id']})
        return _scan_summary(existing)

    lead = _upsert_lead(repository, lead_fields, url)
    run = repository.create('audit_run', {
        'id': new_id(),
        'report_id': report_id or new_id(),
        'lead_id': lead['id'],
        'url': url,
        'industry': lead_fields['industry'],
        'goal': lead_fields['goal'],
        'status': QUEUED,
        'progress': INTAKE_PROGRESS,
        'attempt': (existing.get('attempt') or 1) + 1 if existing else 1,
    })
    if existing:
        repository.update('audit_run', existing['id'], {'superseded_by': run['id']})
        logger.info("Scan %s supersedes finished scan %s (attempt %d)",
                    run['id'], existing['id'], run['attempt'],
                    extra={'scan_id': run['id'], 'report_id': report_id})

    log_event(repository, 'audit_started', lead_id=lead['id'], audit_run_id=run['id'],
              payload={'url': url, 'report_id': run['report_id'], 'attempt': run['attempt']})
    if _get_orchestrator().enqueue(run['id']) is None:
        logger.warning("Scan %s was not scheduled: already claimed by a running job", run['id'],
                       extra={'scan_id': run['id']})

    logger.info("Scan %s queued for %s", run['id'], url,
                extra={'scan_id': run['id'], 'lead_id': lead['id'], 'report_id': run['report_id']})
    return _scan_summary(run)


def get_scan_status(scan_id: str) -> dict:
    """Current state of a scan; results only once present. Raises NotFoundError."""
    run = get_repository().require('audit_run', scan_id)
    status = _scan_summary(run)
    status.update(attempt=run.get('attempt'), url=run.get('url'))
    for key in ('scores', 'confidence', 'insights', 'recommendations', 'snapshot', 'error_message',
                'superseded_by'):
        if run.get(key) is not None:
            status[key] = run[key]
    return status


# ── Lead scoring and automation ───────────────────────────────────────────────

def get_lead_score(lead_id: str) -> dict:
    """Stored score/category, as written by the last recompute."""
    lead = get_repository().require('lead', lead_id)
    return {'lead_id': lead['id'], 'score': lead.get('lead_score') or 0,
            'category': lead.get('lead_category') or 'cold'}


def recompute_lead_score(lead_id: str, now: Optional[datetime] = None) -> dict:
    """Rescore from history, persist, log lead_scored, then run the hot-lead trigger."""
    repository = get_repository()
    now = now or utcnow()
    result = score_lead(lead_id, repository, now=now)

    repository.update('lead', lead_id, {'lead_score': result.score, 'lead_category': result.category})
    log_event(repository, 'lead_scored', lead_id=lead_id,
              payload={'score': result.score, 'category': result.category, 'reasons': result.reasons},
              now=now)

    automation = maybe_trigger(lead_id, repository, now=now)
    return dict(result.to_dict(), automation=automation.to_dict())


def get_latest_generated_message(lead_id: str) -> dict:
    repository = get_repository()
    repository.require('lead', lead_id)
    message = repository.find_one('generated_message', lead_id=lead_id)
    if message is None:
        raise NotFoundError('generated_message', f'latest for lead {lead_id}')
    return message


def get_generated_message(message_id: str) -> dict:
    return get_repository().require('generated_message', message_id)


def generate_follow_up_message(lead_id: str) -> dict:
    """Always creates a new GeneratedMessage record."""
    repository = get_repository()
    lead = repository.require('lead', lead_id)
    message = store_follow_up(repository, lead)
    log_event(repository, 'ai_follow_up_generated', lead_id=lead_id,
              audit_run_id=message.get('audit_run_id'),
              simulator_run_id=message.get('simulator_run_id'),
              payload={'generated_message_id': message['id']})
    return message


# ── Simulator and events ──────────────────────────────────────────────────────

def run_simulation(inputs: dict, lead_id: Optional[str] = None,
                   audit_run_id: Optional[str] = None) -> dict:
    """
    Project growth scenarios. The run is stored when persistence is available;
    without it the projection is still returned, just without an id.
    """
    normalised = normalise_inputs(inputs)
    result = run_simulator(normalised)

    try:
        repository = get_repository()
    except NotConfiguredError:
        logger.info("Simulator run not stored: persistence is not configured")
        return {'simulator_run_id': None, **result}

    if lead_id:
        repository.require('lead', lead_id)
    if audit_run_id:
        repository.require('audit_run', audit_run_id)

    record = repository.create('simulator_run', {
        'lead_id': lead_id,
        'audit_run_id': audit_run_id,
        'visitors': result['inputs']['visitors'],
        'avg_order_value': result['inputs']['avg_order_value'],
        'inputs': result['inputs'],
        'outputs': result['outputs'],
    })
    log_event(repository, 'simulator_completed', lead_id=lead_id, audit_run_id=audit_run_id,
              simulator_run_id=record['id'],
              payload={'summary_score': result['outputs']['summary_score']})
    return {'simulator_run_id': record['id'], **result}


def record_event(event_type: str, lead_id: Optional[str] = None,
                 audit_run_id: Optional[str] = None, simulator_run_id: Optional[str] = None,
                 payload: Optional[dict] = None) -> dict:
    """Log a client-reported event. Referenced records must exist."""
    repository = get_repository()
    for kind, record_id in (('lead', lead_id), ('audit_run', audit_run_id),
                            ('simulator_run', simulator_run_id)):
        if record_id:
            repository.require(kind, record_id)
    return log_event(repository, event_type, lead_id=lead_id, audit_run_id=audit_run_id,
                     simulator_run_id=simulator_run_id, payload=payload)
