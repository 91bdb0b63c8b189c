"""Tests for growth_audit.services.repository — both backends behave the same."""
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import patch

from growth_audit.errors import NotConfiguredError, NotFoundError
from growth_audit.services import repository as repository_mod
from growth_audit.services.repository import (
    FileRepository, SqlRepository, build_repository, get_repository, set_repository,
)


@pytest.fixture(params=['sql', 'file'])
def repo(request, sql_repository, file_repository):
    return sql_repository if request.param == 'sql' else file_repository


class TestCrud:

    def test_create_fills_id_and_timestamps(self, repo):
        lead = repo.create('lead', {'full_name': 'Sam Carter', 'email': 'sam@x.example'})
        assert lead['id']
        assert lead['created_at'] and lead['updated_at']
        assert lead['lead_score'] == 0
        assert lead['lead_category'] == 'cold'
        assert lead['status'] == 'new'

    def test_get_round_trips_json_columns(self, repo):
        lead = repo.create('lead', {'full_name': 'Sam'})
        run = repo.create('audit_run', {
            'lead_id': lead['id'], 'report_id': 'r1', 'url': 'https://example.com/',
            'status': 'COMPLETED', 'progress': 100,
            'scores': {'overall': 61, 'speed': 70}, 'insights': ['a', 'b'],
        })
        fetched = repo.get('audit_run', run['id'])
        assert fetched['scores'] == {'overall': 61, 'speed': 70}
        assert fetched['insights'] == ['a', 'b']
        assert fetched['attempt'] == 1

    def test_get_missing_returns_none(self, repo):
        assert repo.get('lead', 'nope') is None

    def test_require_missing_raises(self, repo):
        with pytest.raises(NotFoundError) as exc:
            repo.require('audit_run', 'nope')
        assert exc.value.kind == 'audit_run'
        assert 'Audit run not found' in str(exc.value)

    def test_update(self, repo):
        lead = repo.create('lead', {'full_name': 'Sam'})
        seen = datetime(2026, 3, 9, 8, 30, tzinfo=timezone.utc)
        updated = repo.update('lead', lead['id'], {'lead_score': 72, 'last_seen_at': seen})
        assert updated['lead_score'] == 72
        assert updated['last_seen_at'].startswith('2026-03-09T08:30:00')
        assert repo.get('lead', lead['id'])['lead_score'] == 72

    def test_update_missing_raises(self, repo):
        with pytest.raises(NotFoundError):
            repo.update('lead', 'nope', {'lead_score': 1})

    def test_unknown_kind_or_field(self, repo):
        with pytest.raises(ValueError):
            repo.create('invoice', {})
        with pytest.raises(ValueError):
            repo.create('lead', {'shoe_size': 9})


class TestRecent:

    def test_most_recent_first_with_limit(self, repo):
        lead = repo.create('lead', {'full_name': 'Sam'})
        base = datetime(2026, 3, 1, tzinfo=timezone.utc)
        for day in range(5):
            repo.create('event', {'lead_id': lead['id'], 'type': 'module_clicked',
                                  'payload': {'day': day}, 'created_at': base + timedelta(days=day)})
        events = repo.recent('event', lead_id=lead['id'], limit=3)
        assert [e['payload']['day'] for e in events] == [4, 3, 2]

    def test_filters(self, repo):
        lead = repo.create('lead', {'full_name': 'Sam'})
        other = repo.create('lead', {'full_name': 'Alex'})
        repo.create('automation_task', {'lead_id': lead['id'], 'status': 'pending'})
        repo.create('automation_task', {'lead_id': lead['id'], 'status': 'completed'})
        repo.create('automation_task', {'lead_id': other['id'], 'status': 'pending'})
        pending = repo.recent('automation_task', lead_id=lead['id'], status='pending')
        assert len(pending) == 1
        assert pending[0]['type'] == 'follow_up'

    def test_find_one_returns_latest_update(self, repo):
        first = repo.create('lead', {'full_name': 'Sam', 'email': 'a@x.example'})
        repo.create('lead', {'full_name': 'Alex', 'email': 'b@x.example'})
        repo.update('lead', first['id'], {'status': 'contacted'})
        assert repo.find_one('lead')['id'] == first['id']
        assert repo.find_one('lead', email='b@x.example')['full_name'] == 'Alex'
        assert repo.find_one('lead', email='c@x.example') is None


class TestFileRepository:

    def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / 'nested' / 'store.json')
        lead = FileRepository(path).create('lead', {'full_name': 'Sam'})
        assert FileRepository(path).get('lead', lead['id'])['full_name'] == 'Sam'

    def test_returned_records_are_copies(self, file_repository):
        lead = file_repository.create('lead', {'full_name': 'Sam', 'extra_data': {'a': 1}})
        lead['extra_data']['a'] = 2
        assert file_repository.get('lead', lead['id'])['extra_data'] == {'a': 1}


class TestBackendSelection:

    def test_file_backend(self, tmp_path):
        with patch.object(repository_mod, 'FILE_STORE_PATH', str(tmp_path / 's.json')):
            assert isinstance(build_repository('file'), FileRepository)

    def test_disabled_backend_not_configured(self):
        with pytest.raises(NotConfiguredError):
            build_repository('none')

    def test_sql_backend_creates_sqlite_schema(self, db_engine):
        with patch('growth_audit.services.repository.database.get_engine', return_value=db_engine):
            assert isinstance(build_repository('sql'), SqlRepository)

    def test_get_repository_caches(self, sql_repository):
        set_repository(sql_repository)
        assert get_repository() is sql_repository

    def test_get_repository_builds_lazily(self):
        set_repository(None)
        with patch.object(repository_mod, 'STORE_BACKEND', 'none'):
            with pytest.raises(NotConfiguredError):
                get_repository()
