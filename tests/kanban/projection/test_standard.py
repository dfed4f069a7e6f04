"""Tests for the standard strategy — persisted placements plus sales overrides."""
from datetime import timedelta

import pytest

from kanban.projection.engine import project


@pytest.fixture
def sales_board(sales, front_desk, saloane):
    """Sales with the front desk and one department present (for active-order lookups)."""
    return sales


def _project(pipeline, now):
    result = project(pipeline.id, now=now)
    assert result.error is None
    return result.data


# ── Non-sales pipelines ──────────────────────────────────────────────────────

class TestPlainPipeline:

    def test_placement_is_the_stage_and_newest_first(self, board, now):
        marketing = board.pipeline('Marketing', ['Contactat', 'Interesat'])
        older = board.lead(full_name='Older', created_at=now - timedelta(days=5), callback_date=now + timedelta(hours=1))
        newer = board.lead(full_name='Newer', created_at=now - timedelta(days=1))
        board.place('lead', older, marketing, 'Interesat')
        board.place('lead', newer, marketing, 'Contactat')

        items = _project(marketing, now)

        assert [i.id for i in items] == [newer, older]
        assert items[1].stage == 'Interesat'
        assert all(not i.is_virtual for i in items)

    def test_only_leads_are_shown(self, board, now):
        marketing = board.pipeline('Marketing', ['Contactat'])
        board.place('service_order', 'so-stray', marketing, 'Contactat')
        assert _project(marketing, now) == []


# ── Sales overrides ──────────────────────────────────────────────────────────

class TestSalesOverrides:

    def test_active_callback_beats_placement(self, board, sales_board, now, find_item):
        lead = board.lead(callback_date=now + timedelta(hours=2))
        board.place('lead', lead, sales_board, 'Leaduri')

        item = find_item(_project(sales_board, now), lead)

        assert item.stage == 'Call back'
        assert item.annotations['override'] is True
        # Display only: the placement did not move
        assert board.placement_stage('lead', lead, sales_board) == sales_board.stage('Leaduri')

    def test_past_callback_ignored(self, board, sales_board, now, find_item):
        lead = board.lead(callback_date=now - timedelta(hours=2))
        board.place('lead', lead, sales_board, 'Leaduri')
        assert find_item(_project(sales_board, now), lead).stage == 'Leaduri'

    def test_no_deal_beats_everything(self, board, sales_board, now, find_item):
        lead = board.lead(no_deal=True, callback_date=now + timedelta(hours=2))
        board.order(lead, courier_sent=True, courier_scheduled_at=now - timedelta(hours=30))
        board.place('lead', lead, sales_board, 'Leaduri')
        assert find_item(_project(sales_board, now), lead).stage == 'No deal'

    def test_no_answer_window(self, board, sales_board, now, find_item):
        lead = board.lead(no_answer_callback_at=now + timedelta(minutes=30))
        board.place('lead', lead, sales_board, 'Leaduri')
        assert find_item(_project(sales_board, now), lead).stage == 'Nu raspunde'

    def test_ordered_status(self, board, sales_board, now, find_item):
        lead = board.lead()
        board.order(lead, status='comanda')
        board.place('lead', lead, sales_board, 'Leaduri')
        assert find_item(_project(sales_board, now), lead).stage == 'Avem comanda'

    def test_no_override_keeps_placement(self, board, sales_board, now, find_item):
        lead = board.lead()
        board.place('lead', lead, sales_board, 'Call back')
        item = find_item(_project(sales_board, now), lead)
        assert item.stage == 'Call back'
        assert 'override' not in item.annotations


class TestCourierWindow:
    """Courier / office-direct leads: arrived-today window, then Has-Order."""

    def test_sent_30h_ago_goes_to_has_order(self, board, sales_board, now, find_item):
        lead = board.lead()
        board.order(lead, courier_sent=True, courier_scheduled_at=now - timedelta(hours=30))
        board.place('lead', lead, sales_board, 'Leaduri')

        item = find_item(_project(sales_board, now), lead)

        assert item.stage == 'Avem comanda'
        assert not item.is_virtual

    def test_sent_today_shown_once_as_arrived_today(self, board, sales_board, now, find_item):
        lead = board.lead()
        board.order(lead, office_direct=True, office_direct_at=now - timedelta(hours=5))
        board.place('lead', lead, sales_board, 'Leaduri')

        items = _project(sales_board, now)
        item = find_item(items, lead)

        assert item.stage == 'Curier ajuns azi'
        assert item.is_virtual
        assert item.annotations['arrived_today'] is True
        assert items[-1].id == lead

    def test_manual_has_order_wins_inside_window(self, board, sales_board, now, find_item):
        lead = board.lead()
        board.order(lead, courier_sent=True, courier_scheduled_at=now - timedelta(hours=5))
        board.place('lead', lead, sales_board, 'Avem comanda')

        item = find_item(_project(sales_board, now), lead)

        assert item.stage == 'Avem comanda'
        assert not item.is_virtual

    def test_archived_stays_archived(self, board, sales_board, now, find_item):
        lead = board.lead()
        board.order(lead, courier_sent=True, courier_scheduled_at=now - timedelta(hours=5))
        board.place('lead', lead, sales_board, 'Arhivat')
        assert find_item(_project(sales_board, now), lead).stage == 'Arhivat'

    def test_courier_tag_without_order_uses_lead_timestamp(self, board, sales_board, now, find_item):
        lead = board.lead(courier_sent_at=now - timedelta(hours=40))
        board.tag(lead, 'Curier trimis')
        board.place('lead', lead, sales_board, 'Leaduri')
        assert find_item(_project(sales_board, now), lead).stage == 'Avem comanda'


class TestActiveOrdersAndForeign:

    def test_order_open_on_front_desk(self, board, sales_board, front_desk, now, find_item):
        lead = board.lead()
        order = board.order(lead)
        board.place('service_order', order, front_desk, 'In lucru')
        board.place('lead', lead, sales_board, 'Leaduri')
        assert find_item(_project(sales_board, now), lead).stage == 'Comenzi active'

    def test_tray_open_in_department(self, board, sales_board, saloane, now, find_item):
        lead = board.lead()
        order = board.order(lead)
        tray = board.tray(order)
        board.place('tray', tray, saloane, 'In lucru')
        board.place('lead', lead, sales_board, 'Leaduri')
        assert find_item(_project(sales_board, now), lead).stage == 'Comenzi active'

    def test_archived_front_desk_order_not_active(self, board, sales_board, front_desk, saloane, now, find_item):
        lead = board.lead()
        order = board.order(lead)
        tray = board.tray(order)
        board.place('service_order', order, front_desk, 'Arhivat')
        board.place('tray', tray, saloane, 'Finalizare')
        board.place('lead', lead, sales_board, 'Leaduri')
        assert find_item(_project(sales_board, now), lead).stage == 'Leaduri'

    def test_foreign_number_in_first_stage(self, board, sales_board, now, find_item):
        lead = board.lead(phone_number='+49 151 0000000')
        board.place('lead', lead, sales_board, 'Leaduri')
        assert find_item(_project(sales_board, now), lead).stage == 'Leaduri straine'

    def test_foreign_number_moved_on_stays(self, board, sales_board, now, find_item):
        lead = board.lead(phone_number='+49 151 0000000')
        board.place('lead', lead, sales_board, 'Avem comanda')
        assert find_item(_project(sales_board, now), lead).stage == 'Avem comanda'

    def test_foreign_number_only_in_details_ignored(self, board, sales_board, now, find_item):
        lead = board.lead(phone_number=None, details='Nume: Ana Pop\nTelefon: +49 151 0000000')
        board.place('lead', lead, sales_board, 'Leaduri')
        assert find_item(_project(sales_board, now), lead).stage == 'Leaduri'


class TestSalesCardContents:

    def test_total_is_sum_over_trays_and_tags_attached(self, board, sales_board, now, find_item):
        lead = board.lead(full_name='Unknown', details='Nume Complet: Ana Pop')
        board.tag(lead, 'VIP', color='gold')
        order = board.order(lead)
        svc = board.service(price=40.0)
        for _ in range(2):
            tray = board.tray(order)
            board.tray_item(tray, service_id=svc, qty=1)
        board.place('lead', lead, sales_board, 'Leaduri')

        item = find_item(_project(sales_board, now), lead)

        assert item.name == 'Ana Pop'
        assert item.total == 80.0
        assert [t.name for t in item.tags] == ['VIP']
