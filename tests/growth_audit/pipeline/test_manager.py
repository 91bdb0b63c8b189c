"""Tests for growth_audit.pipeline.manager — the service's external interface."""
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import patch

from growth_audit.errors import NotConfiguredError, NotFoundError, ValidationError
from growth_audit.pipeline import manager

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _events(repository, event_type):
    return repository.recent('event', limit=50, type=event_type)


class TestStartScan:

    def test_returns_queued_immediately(self, orchestrator, repository, lead_context):
        result = manager.start_scan('example.com', lead_context)
        assert result['status'] == 'QUEUED'
        assert 0 <= result['progress'] <= 10
        assert result['lead_id'] and result['scan_id'] and result['report_id']

        orchestrator.shutdown(wait=True)
        status = manager.get_scan_status(result['scan_id'])
        assert status['url'] == 'https://example.com/'
        assert status['status'] == 'COMPLETED'
        assert status['progress'] == 100
        assert 'overall' in status['scores']

    def test_logs_audit_started(self, inline_orchestrator, repository, lead_context):
        result = manager.start_scan('example.com', lead_context)
        started = _events(repository, 'audit_started')
        assert len(started) == 1
        assert started[0]['audit_run_id'] == result['scan_id']
        assert started[0]['payload']['url'] == 'https://example.com/'

    def test_lead_upserted_by_email(self, inline_orchestrator, repository, lead_context):
        first = manager.start_scan('example.com', lead_context)
        second = manager.start_scan('example.com/pricing', dict(lead_context, full_name='Sam C'))
        assert first['lead_id'] == second['lead_id']
        assert first['scan_id'] != second['scan_id']
        lead = repository.get('lead', first['lead_id'])
        assert lead['full_name'] == 'Sam C'
        assert lead['website_url'] == 'https://example.com/pricing'

    def test_leads_without_email_are_separate(self, inline_orchestrator, lead_context):
        lead_context.pop('email')
        first = manager.start_scan('example.com', lead_context)
        second = manager.start_scan('example.com', lead_context)
        assert first['lead_id'] != second['lead_id']

    @pytest.mark.parametrize('url', ['', 'ftp://example.com', 'https://'])
    def test_invalid_url_creates_nothing(self, inline_orchestrator, repository, lead_context, url):
        with pytest.raises(ValidationError) as exc:
            manager.start_scan(url, lead_context)
        assert exc.value.field == 'url'
        assert repository.recent('lead') == []
        assert repository.recent('audit_run') == []

    def test_missing_contact_creates_nothing(self, inline_orchestrator, repository, lead_context):
        del lead_context['mobile_number']
        with pytest.raises(ValidationError) as exc:
            manager.start_scan('example.com', lead_context)
        assert exc.value.field == 'mobile_number'
        assert repository.recent('lead') == []

    def test_in_flight_report_returns_existing_run(self, inline_orchestrator, repository,
                                                   make_lead, lead_context):
        lead = make_lead()
        running = repository.create('audit_run', {
            'lead_id': lead['id'], 'report_id': 'rep-1', 'url': 'https://example.com/',
            'status': 'PROCESSING', 'progress': 40,
        })
        result = manager.start_scan('example.com', lead_context, report_id='rep-1')
        assert result['scan_id'] == running['id']
        assert result['status'] == 'PROCESSING'
        assert result['progress'] == 40
        assert _events(repository, 'audit_started') == []

    def test_finished_report_gets_a_new_run(self, inline_orchestrator, repository, lead_context):
        first = manager.start_scan('example.com', lead_context, report_id='rep-2')
        assert manager.get_scan_status(first['scan_id'])['status'] == 'COMPLETED'

        again = manager.start_scan('example.com', lead_context, report_id='rep-2')
        assert again['scan_id'] != first['scan_id']
        assert again['report_id'] == 'rep-2'
        assert again['status'] == 'QUEUED'
        assert again['progress'] == 4

        rerun = manager.get_scan_status(again['scan_id'])
        assert rerun['attempt'] == 2
        assert rerun['status'] == 'COMPLETED'

    def test_finished_run_never_moves_backwards(self, inline_orchestrator, lead_context):
        first = manager.start_scan('example.com', lead_context, report_id='rep-2b')
        before = manager.get_scan_status(first['scan_id'])

        again = manager.start_scan('example.com', lead_context, report_id='rep-2b')
        after = manager.get_scan_status(first['scan_id'])
        assert (after['status'], after['progress']) == ('COMPLETED', 100)
        assert after['scores'] == before['scores']
        assert after['attempt'] == 1
        assert after['superseded_by'] == again['scan_id']

    def test_failed_report_is_superseded(self, inline_orchestrator, repository, make_lead, lead_context):
        lead = make_lead()
        failed = repository.create('audit_run', {
            'lead_id': lead['id'], 'report_id': 'rep-3', 'url': 'https://example.com/',
            'status': 'FAILED', 'progress': 100, 'error_message': 'boom',
        })
        again = manager.start_scan('example.com', lead_context, report_id='rep-3')

        status = manager.get_scan_status(again['scan_id'])
        assert status['attempt'] == 2
        assert status['status'] == 'COMPLETED'
        assert 'error_message' not in status

        old = manager.get_scan_status(failed['id'])
        assert old['status'] == 'FAILED'
        assert old['error_message'] == 'boom'

    def test_each_rerun_supersedes_the_current_run(self, inline_orchestrator, repository, lead_context):
        runs = [manager.start_scan('example.com', lead_context, report_id='rep-4') for _ in range(3)]
        current = repository.find_one('audit_run', report_id='rep-4', superseded_by=None)
        assert current['id'] == runs[-1]['scan_id']
        assert current['attempt'] == 3
        assert repository.get('audit_run', runs[0]['scan_id'])['superseded_by'] == runs[1]['scan_id']

    def test_rerun_while_previous_job_is_releasing(self, inline_orchestrator, lead_context):
        first = manager.start_scan('example.com', lead_context, report_id='rep-5')
        # The finished job still holds its claim, as between COMPLETED and release
        inline_orchestrator.tracker.acquire(first['scan_id'])

        again = manager.start_scan('example.com', lead_context, report_id='rep-5')
        status = manager.get_scan_status(again['scan_id'])
        assert status['status'] == 'COMPLETED'
        assert status['progress'] == 100


class TestGetScanStatus:

    def test_unknown_scan(self, repository):
        with pytest.raises(NotFoundError):
            manager.get_scan_status('nope')

    def test_queued_scan_has_no_results(self, repository, make_lead):
        lead = make_lead()
        run = repository.create('audit_run', {
            'lead_id': lead['id'], 'report_id': 'rep-q', 'url': 'https://example.com/',
            'status': 'QUEUED', 'progress': 4,
        })
        status = manager.get_scan_status(run['id'])
        assert status['status'] == 'QUEUED'
        assert 'scores' not in status
        assert 'recommendations' not in status


class TestLeadScoring:

    def _hot_history(self, repository, make_lead):
        lead = make_lead(last_seen_at=NOW - timedelta(days=1))
        for days in (1, 2, 3):
            repository.create('audit_run', {
                'lead_id': lead['id'], 'report_id': f'rep-h{days}', 'url': lead['website_url'],
                'status': 'COMPLETED', 'progress': 100, 'scores': {'overall': 40},
                'created_at': NOW - timedelta(days=days),
            })
        repository.create('simulator_run', {
            'lead_id': lead['id'], 'visitors': 8000, 'avg_order_value': 450,
            'outputs': {'scenarios': [{'projected_revenue_delta': 2000},
                                      {'projected_revenue_delta': 5000}]},
            'created_at': NOW - timedelta(days=1),
        })
        for _ in range(2):
            repository.create('event', {'lead_id': lead['id'], 'type': 'pdf_downloaded',
                                        'created_at': NOW - timedelta(days=1)})
        return lead

    def test_stored_score_defaults(self, repository, make_lead):
        lead = make_lead()
        assert manager.get_lead_score(lead['id']) == {'lead_id': lead['id'], 'score': 0,
                                                      'category': 'cold'}

    def test_unknown_lead(self, repository):
        with pytest.raises(NotFoundError):
            manager.recompute_lead_score('nope')

    def test_cold_lead_recompute(self, repository, make_lead):
        lead = make_lead(last_seen_at=NOW - timedelta(days=30))
        result = manager.recompute_lead_score(lead['id'], now=NOW)
        assert result['category'] == 'cold'
        assert result['automation']['executed'] is False
        assert manager.get_lead_score(lead['id'])['score'] == result['score']
        scored = _events(repository, 'lead_scored')
        assert scored[0]['payload']['score'] == result['score']

    def test_hot_lead_triggers_exactly_once(self, repository, make_lead):
        lead = self._hot_history(repository, make_lead)

        first = manager.recompute_lead_score(lead['id'], now=NOW)
        assert first['score'] >= 85
        assert first['category'] == 'hot'
        assert first['automation']['executed'] is True

        second = manager.recompute_lead_score(lead['id'], now=NOW)
        assert second['category'] == 'hot'
        assert second['automation']['executed'] is False

        assert len(repository.recent('automation_task', lead_id=lead['id'])) == 1
        assert len(repository.recent('generated_message', lead_id=lead['id'])) == 1
        assert repository.get('lead', lead['id'])['status'] == 'hot_followup_sent'


class TestMessages:

    def test_no_message_yet(self, repository, make_lead):
        lead = make_lead()
        with pytest.raises(NotFoundError):
            manager.get_latest_generated_message(lead['id'])

    def test_each_generation_creates_a_record(self, repository, make_lead):
        lead = make_lead()
        first = manager.generate_follow_up_message(lead['id'])
        second = manager.generate_follow_up_message(lead['id'])
        assert first['id'] != second['id']
        assert manager.get_generated_message(first['id'])['id'] == first['id']
        assert manager.get_generated_message(second['id'])['id'] == second['id']
        assert manager.get_latest_generated_message(lead['id'])['id'] == second['id']
        assert len(_events(repository, 'ai_follow_up_generated')) == 2

    def test_unknown_message(self, repository):
        with pytest.raises(NotFoundError):
            manager.get_generated_message('nope')


class TestSimulation:

    INPUTS = {'visitors': 1000, 'avg_order_value': 100, 'response_time_minutes': 30,
              'followups': 2}

    def test_run_is_stored(self, repository, make_lead):
        lead = make_lead()
        result = manager.run_simulation(self.INPUTS, lead_id=lead['id'])
        record = repository.get('simulator_run', result['simulator_run_id'])
        assert record['lead_id'] == lead['id']
        assert record['visitors'] == 1000
        assert record['outputs']['summary_score'] == result['outputs']['summary_score']
        assert len(_events(repository, 'simulator_completed')) == 1

    def test_unknown_lead_rejected(self, repository):
        with pytest.raises(NotFoundError):
            manager.run_simulation(self.INPUTS, lead_id='nope')

    def test_invalid_inputs(self, repository):
        with pytest.raises(ValidationError):
            manager.run_simulation({'visitors': 10})

    def test_without_persistence(self):
        with patch('growth_audit.pipeline.manager.get_repository', side_effect=NotConfiguredError()):
            result = manager.run_simulation(self.INPUTS)
        assert result['simulator_run_id'] is None
        assert 'baseline' in result['outputs']


class TestRecordEvent:

    def test_activity_event_touches_lead(self, repository, make_lead):
        lead = make_lead()
        event = manager.record_event('pdf_downloaded', lead_id=lead['id'], payload={'page': 1})
        assert event['type'] == 'pdf_downloaded'
        assert event['payload'] == {'page': 1}
        assert repository.get('lead', lead['id'])['last_seen_at'] is not None

    def test_unknown_type(self, repository):
        with pytest.raises(ValidationError):
            manager.record_event('page_exploded')

    def test_referenced_records_must_exist(self, repository):
        with pytest.raises(NotFoundError):
            manager.record_event('module_clicked', lead_id='nope')
        with pytest.raises(NotFoundError):
            manager.record_event('module_clicked', audit_run_id='nope')
