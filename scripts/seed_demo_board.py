#!/usr/bin/env python3
"""
Seed a demo board for verifying projections locally.

Creates the standard pipelines (Vanzari, Receptie, Curier, Saloane, Frizerii,
Reparatii, Quality) with their stages, plus leads/orders/trays covering:
  1. Lead with an active callback (sales → Callback)
  2. Courier lead sent 30h ago (sales → Avem comanda)
  3. Order with trays in progress + finalized (front desk → In lucru)
  4. Tray finalized in Saloane, not yet reviewed (quality → Saloane)
  5. Foreign-number lead in the first sales stage (sales → Leaduri straine)

Usage:
    python scripts/seed_demo_board.py          # seed all scenarios
    python scripts/seed_demo_board.py --clear  # wipe seeded data first

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import argparse
from datetime import datetime, timezone, timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kanban import create_app
from kanban.database import get_session, engine, Base
from kanban.models.event import ItemEvent
from kanban.models.lead import Lead, LeadTag, Tag
from kanban.models.member import Member
from kanban.models.pipeline import Pipeline, PipelineItem, Stage
from kanban.models.service import Service
from kanban.models.service_order import ServiceOrder
from kanban.models.tray import Tray, TrayItem

SEED_PREFIX = 'demo-'


# ── Board layout ─────────────────────────────────────────────────────────────

BOARDS = {
    'Vanzari': ['Leaduri', 'Leaduri straine', 'Call back', 'Nu raspunde', 'Avem comanda',
                'Comenzi active', 'Curier ajuns azi', 'No deal', 'Arhivat'],
    'Receptie': ['Noua', 'Curier trimis', 'Office direct', 'Colet neridicat', 'Colet ajuns',
                 'In lucru', 'In asteptare', 'De facturat', 'Nu raspunde', 'De trimis',
                 'Ridic personal', 'Arhivat'],
    'Curier': ['De ridicat', 'In tranzit', 'Livrat'],
    'Saloane': ['Noua', 'In lucru', 'In asteptare', 'Finalizare'],
    'Frizerii': ['Noua', 'In lucru', 'In asteptare', 'Finalizare'],
    'Reparatii': ['Noua', 'In lucru', 'Asteptare piese', 'Finalizare'],
    'Quality': ['Validare Saloane', 'Validare Frizerii', 'Validare Reparatii', 'Validare'],
}

TECHNICIANS = [
    ('tech-ana', 'Ana Pop'),
    ('tech-mihai', 'Mihai Ionescu'),
    ('tech-ioana', 'Ioana Dobre'),
]

SERVICES = [
    ('Ascutire foarfeca', 45.0, '30 min'),
    ('Reconditionare masina tuns', 120.0, '1h 30min'),
    ('Inlocuire lama', 60.0, '00:20'),
]


def _id(name):
    return f'{SEED_PREFIX}{name}'


def seed_board(session):
    """Pipelines + stages; returns {pipeline name: {stage name: stage id}}."""
    layout = {}
    for p_pos, (pipeline_name, stage_names) in enumerate(BOARDS.items()):
        pipeline_id = _id(pipeline_name.lower())
        session.add(Pipeline(id=pipeline_id, name=pipeline_name, position=p_pos))
        layout[pipeline_name] = {'id': pipeline_id}
        for s_pos, stage_name in enumerate(stage_names):
            stage_id = _id(f"{pipeline_name}-{stage_name}".lower().replace(' ', '-'))
            session.add(Stage(id=stage_id, pipeline_id=pipeline_id, name=stage_name, position=s_pos))
            layout[pipeline_name][stage_name] = stage_id
    for user_id, name in TECHNICIANS:
        session.add(Member(user_id=_id(user_id), name=name))
    for idx, (name, price, time_text) in enumerate(SERVICES):
        session.add(Service(id=_id(f'service-{idx}'), name=name, price=price, time=time_text))
    session.flush()
    return layout


def _place(session, entity_type, entity_id, pipeline_id, stage_id, moved_at):
    session.add(PipelineItem(
        entity_type=entity_type, entity_id=entity_id, pipeline_id=pipeline_id,
        stage_id=stage_id, created_at=moved_at, updated_at=moved_at,
    ))


def seed_scenarios(session, layout):
    now = datetime.now(timezone.utc)
    sales = layout['Vanzari']
    saloane = layout['Saloane']

    # 1. Callback in 2 hours
    session.add(Lead(id=_id('lead-callback'), full_name='Elena Marin', phone_number='0722000111',
                     callback_date=now + timedelta(hours=2), created_at=now - timedelta(days=3)))
    _place(session, 'lead', _id('lead-callback'), sales['id'], sales['Leaduri'], now - timedelta(days=3))
    print('  [1] Callback lead')

    # 2. Courier sent 30h ago
    session.add(Lead(id=_id('lead-courier'), full_name='Radu Stan', phone_number='0733000222',
                     created_at=now - timedelta(days=2)))
    session.add(ServiceOrder(id=_id('order-courier'), lead_id=_id('lead-courier'), number='SO-1001',
                             courier_sent=True, courier_scheduled_at=now - timedelta(hours=30),
                             created_at=now - timedelta(days=2)))
    _place(session, 'lead', _id('lead-courier'), sales['id'], sales['Leaduri'], now - timedelta(days=2))
    print('  [2] Courier lead (30h)')

    # 3. Order with one tray in progress, one finalized + validated
    session.add(Lead(id=_id('lead-salon'), full_name='Salon Bella', phone_number='0744000333',
                     created_at=now - timedelta(days=5)))
    session.add(ServiceOrder(id=_id('order-salon'), lead_id=_id('lead-salon'), number='SO-1002',
                             office_direct=True, created_at=now - timedelta(days=5)))
    for idx, stage_name in enumerate(['In lucru', 'Finalizare']):
        tray_id = _id(f'tray-salon-{idx}')
        session.add(Tray(id=tray_id, service_order_id=_id('order-salon'), number=f'T-{200 + idx}',
                         technician_id=_id('tech-ana'), created_at=now - timedelta(days=4)))
        session.add(TrayItem(tray_id=tray_id, service_id=_id('service-0'), department_id=saloane['id'], qty=2))
        _place(session, 'tray', tray_id, saloane['id'], saloane[stage_name], now - timedelta(hours=6 - idx))
    session.add(ItemEvent(entity_type='tray', entity_id=_id('tray-salon-1'), event_type='quality_validated',
                          actor_name='QC', created_at=now - timedelta(hours=1)))
    print('  [3] Front-desk order with mixed trays')

    # 4. Finalized tray awaiting review
    session.add(Lead(id=_id('lead-qc'), full_name='Frizeria Nord', phone_number='0755000444',
                     created_at=now - timedelta(days=6)))
    session.add(ServiceOrder(id=_id('order-qc'), lead_id=_id('lead-qc'), number='SO-1003',
                             created_at=now - timedelta(days=6)))
    session.add(Tray(id=_id('tray-qc'), service_order_id=_id('order-qc'), number='T-300',
                     technician_id=_id('tech-mihai'), created_at=now - timedelta(days=6)))
    session.add(TrayItem(tray_id=_id('tray-qc'), service_id=_id('service-1'), department_id=saloane['id']))
    _place(session, 'tray', _id('tray-qc'), saloane['id'], saloane['Finalizare'], now - timedelta(hours=2))
    print('  [4] Tray awaiting quality review')

    # 5. Foreign number
    session.add(Lead(id=_id('lead-foreign'), full_name='Hans Weber', phone_number='+49 151 0000000',
                     created_at=now - timedelta(hours=5)))
    _place(session, 'lead', _id('lead-foreign'), sales['id'], sales['Leaduri'], now - timedelta(hours=5))
    session.add(Tag(id=_id('tag-saloane'), name='Saloane', color='purple'))
    session.add(LeadTag(lead_id=_id('lead-salon'), tag_id=_id('tag-saloane')))
    print('  [5] Foreign-number lead')


def clear_seeded_data(session):
    """Delete every row this script created (ids start with SEED_PREFIX)."""
    like = f'{SEED_PREFIX}%'
    deleted = 0
    deleted += session.query(PipelineItem).filter(PipelineItem.entity_id.like(like)).delete(synchronize_session=False)
    deleted += session.query(ItemEvent).filter(ItemEvent.entity_id.like(like)).delete(synchronize_session=False)
    deleted += session.query(TrayItem).filter(TrayItem.tray_id.like(like)).delete(synchronize_session=False)
    for model in (Tray, ServiceOrder, LeadTag, Lead, Tag, Service, Member, Stage, Pipeline):
        column = model.lead_id if model is LeadTag else (model.user_id if model is Member else model.id)
        deleted += session.query(model).filter(column.like(like)).delete(synchronize_session=False)
    session.commit()
    print(f'Cleared {deleted} seeded rows.')


def main():
    parser = argparse.ArgumentParser(description='Seed a demo board for projection checks')
    parser.add_argument('--clear', action='store_true', help='Clear seeded data before (or instead of) seeding')
    parser.add_argument('--clear-only', action='store_true', help='Only clear, do not re-seed')
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        # Ensure tables exist (for SQLite local dev)
        Base.metadata.create_all(engine)

        session = get_session()
        try:
            if args.clear or args.clear_only:
                clear_seeded_data(session)
                if args.clear_only:
                    return

            print('Seeding demo board...')
            layout = seed_board(session)
            seed_scenarios(session, layout)
            session.commit()
            print(f"\nDone! Try GET /api/pipelines/{layout['Vanzari']['id']}/items")

        except Exception as e:
            session.rollback()
            print(f'Error: {e}')
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
