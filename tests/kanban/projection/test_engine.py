"""Tests for kanban.projection.engine — entry points, error containment, single-item projection."""
from datetime import timedelta
from unittest.mock import patch

from kanban.projection.base import FetchResult
from kanban.projection.engine import project, project_by_type, project_single


class TestProject:

    def test_empty_pipeline_id(self):
        result = project('')
        assert result.data == [] and result.error is None

    def test_unknown_pipeline(self, sales, now):
        result = project('no-such-pipeline', now=now)
        assert result.data == [] and result.error is None

    def test_empty_board(self, sales, now):
        result = project(sales.id, now=now)
        assert result.data == [] and result.error is None

    def test_fetch_failure_becomes_error(self, sales, now):
        with patch('kanban.projection.engine.fetch_pipelines', return_value=FetchResult([], 'db down')):
            result = project(sales.id, now=now)
        assert result.data == []
        assert result.error == 'db down'

    def test_strategy_exception_becomes_error(self, board, sales, now):
        lead = board.lead()
        board.place('lead', lead, sales, 'Leaduri')
        with patch('kanban.projection.standard.load_bundle', side_effect=RuntimeError('boom')):
            result = project(sales.id, now=now)
        assert result.data == []
        assert result.error == 'boom'

    def test_items_serialize_to_json_types(self, board, sales, now):
        lead = board.lead(callback_date=now + timedelta(hours=1))
        board.place('lead', lead, sales, 'Leaduri')

        payload = project(sales.id, now=now).data[0].to_dict()

        assert payload['stage'] == 'Call back'
        assert payload['callback_date'] == (now + timedelta(hours=1)).isoformat()
        assert payload['tags'] == []


class TestFetchConcurrently:

    def test_results_keyed_by_name_on_worker_threads(self):
        from kanban.projection.fetchers import fetch_concurrently
        calls = {
            'a': lambda: FetchResult([1]),
            'b': lambda: FetchResult([], 'nope'),
        }
        with patch('kanban.projection.fetchers.FETCH_MAX_WORKERS', 4):
            results = fetch_concurrently(calls)
        assert results['a'].data == [1]
        assert not results['b'].ok


class TestProjectByType:

    def test_filters_entity_type(self, board, now):
        curier = board.pipeline('Curier', ['De ridicat'])
        lead = board.lead()
        order = board.order(lead)
        board.place('service_order', order, curier, 'De ridicat')

        assert [i.id for i in project_by_type('service_order', curier.id, now=now).data] == [order]
        assert project_by_type('tray', curier.id, now=now).data == []


class TestProjectSingle:

    def test_unknown_entity_type(self, sales):
        result = project_single('invoice', 'x', sales.id)
        assert result.data is None
        assert 'invoice' in result.error

    def test_not_placed(self, board, sales):
        lead = board.lead()
        result = project_single('lead', lead, sales.id)
        assert result.data is None and result.error is None

    def test_lead_at_persisted_stage_without_overrides(self, board, sales, now):
        lead = board.lead(callback_date=now + timedelta(days=365))
        board.place('lead', lead, sales, 'Leaduri')

        item = project_single('lead', lead, sales.id).data

        assert item.id == lead
        assert item.stage == 'Leaduri'
        assert item.placement_id is not None

    def test_service_order(self, board, front_desk):
        lead = board.lead(full_name='Salon Bella')
        order = board.order(lead, number='SO-5')
        board.tray(order, number='T-2')
        board.tray(order, number='T-1')
        board.place('service_order', order, front_desk, 'Colet ajuns')

        item = project_single('service_order', order, front_desk.id).data

        assert item.stage == 'Colet ajuns'
        assert item.name == 'Salon Bella'
        assert item.tray_numbers == ['T-1', 'T-2']

    def test_tray_with_urgent_tag_and_technician(self, board, saloane):
        board.member('tech-a', 'Ana Pop')
        lead = board.lead()
        order = board.order(lead, urgent=True)
        tray = board.tray(order, number='T-3', technician_id='tech-a')
        board.place('tray', tray, saloane, 'In lucru')

        item = project_single('tray', tray, saloane.id).data

        assert item.stage == 'In lucru'
        assert item.technician == 'Ana Pop'
        assert item.pipeline_name == 'Saloane'
        assert item.tags[0].id == f'urgent_{tray}'

    def test_failure_becomes_error(self, board, sales):
        lead = board.lead()
        board.place('lead', lead, sales, 'Leaduri')
        with patch('kanban.projection.engine.load_bundle', side_effect=RuntimeError('gone')):
            result = project_single('lead', lead, sales.id)
        assert result.data is None
        assert result.error == 'gone'
