"""Tests for growth_audit.services.events — event log and lead activity."""
from datetime import datetime, timezone

import pytest

from growth_audit.errors import ValidationError
from growth_audit.services.events import log_event, touch_lead

SEEN = datetime(2026, 3, 9, 10, 0, tzinfo=timezone.utc)


class TestLogEvent:

    def test_appends_event(self, sql_repository, make_lead):
        lead = make_lead()
        event = log_event(sql_repository, 'pdf_downloaded', lead_id=lead['id'],
                          payload={'report_id': 'r1'}, now=SEEN)
        assert event['type'] == 'pdf_downloaded'
        assert event['payload'] == {'report_id': 'r1'}
        assert event['created_at'].startswith('2026-03-09T10:00:00')

    def test_activity_refreshes_last_seen(self, sql_repository, make_lead):
        lead = make_lead()
        log_event(sql_repository, 'module_clicked', lead_id=lead['id'], now=SEEN)
        assert sql_repository.get('lead', lead['id'])['last_seen_at'].startswith('2026-03-09T10:00:00')

    @pytest.mark.parametrize('event_type', ['lead_scored', 'auto_followup_triggered',
                                            'ai_follow_up_generated', 'audit_failed'])
    def test_system_events_leave_last_seen(self, sql_repository, make_lead, event_type):
        lead = make_lead()
        log_event(sql_repository, event_type, lead_id=lead['id'], now=SEEN)
        assert sql_repository.get('lead', lead['id'])['last_seen_at'] is None

    def test_unknown_type_rejected(self, sql_repository):
        with pytest.raises(ValidationError) as exc:
            log_event(sql_repository, 'made_up')
        assert exc.value.field == 'type'
        assert sql_repository.recent('event') == []

    def test_event_without_lead(self, sql_repository):
        event = log_event(sql_repository, 'simulator_opened')
        assert event['lead_id'] is None
        assert event['payload'] == {}


class TestTouchLead:

    def test_unknown_lead_ignored(self, sql_repository):
        assert touch_lead(sql_repository, 'nope') is None
        assert touch_lead(sql_repository, None) is None

    def test_sets_last_seen(self, file_repository, make_lead):
        lead = make_lead(repo=file_repository)
        touched = touch_lead(file_repository, lead['id'], SEEN)
        assert touched['last_seen_at'] == SEEN.isoformat()
