"""Shared test fixtures."""
import itertools
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kanban.database import Base
from kanban.projection.matchers import reset_stage_patterns


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

SALES_STAGES = ['Leaduri', 'Leaduri straine', 'Call back', 'Nu raspunde', 'Avem comanda',
                'Comenzi active', 'Curier ajuns azi', 'No deal', 'Arhivat']
FRONT_DESK_STAGES = ['Noua', 'Curier trimis', 'Office direct', 'Colet neridicat', 'Colet ajuns',
                     'In lucru', 'In asteptare', 'De facturat', 'Nu raspunde', 'De trimis',
                     'Ridic personal', 'Arhivat']
DEPARTMENT_STAGES = ['Noua', 'In lucru', 'In asteptare', 'Finalizare']
QUALITY_STAGES = ['De validat', 'Saloane', 'Frizerii']


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created (one connection shared across threads)."""
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import kanban.models.pipeline
    import kanban.models.lead
    import kanban.models.service_order
    import kanban.models.tray
    import kanban.models.service
    import kanban.models.event
    import kanban.models.member
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route all get_session() calls to the test session.

    We disable close() so that fetchers and writers calling session.close()
    in their finally blocks don't invalidate the shared test session. Fetches
    run inline (one worker) so the session is never shared across threads.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    with patch('kanban.database.get_session', return_value=db_session), \
            patch('kanban.projection.fetchers.get_session', return_value=db_session), \
            patch('kanban.projection.writes.get_session', return_value=db_session), \
            patch('kanban.projection.fetchers.FETCH_MAX_WORKERS', 1):
        yield db_session
    db_session.close = _real_close


@pytest.fixture(autouse=True)
def _fresh_stage_patterns():
    """Each test loads stage patterns from scratch."""
    reset_stage_patterns()
    yield
    reset_stage_patterns()


@pytest.fixture
def app():
    """Flask test app."""
    from kanban import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def now():
    return NOW


# ── Board factory ────────────────────────────────────────────────────────────

@dataclass
class SeededPipeline:
    id: str
    name: str
    stages: Dict[str, str] = field(default_factory=dict)   # stage name → stage id

    def stage(self, name):
        return self.stages[name]


class BoardFactory:
    """Writes board rows straight to the test DB. Every helper commits."""

    def __init__(self, session):
        self.session = session
        self._seq = itertools.count(1)

    def _id(self, prefix):
        return f'{prefix}-{next(self._seq)}'

    def _save(self, *rows):
        self.session.add_all(rows)
        self.session.commit()

    def pipeline(self, name, stages, position=0):
        from kanban.models.pipeline import Pipeline, Stage
        pipeline = SeededPipeline(id=self._id(name.lower().replace(' ', '-')), name=name)
        rows = [Pipeline(id=pipeline.id, name=name, position=position)]
        for pos, stage_name in enumerate(stages):
            stage_id = self._id('stage')
            pipeline.stages[stage_name] = stage_id
            rows.append(Stage(id=stage_id, pipeline_id=pipeline.id, name=stage_name, position=pos))
        self._save(*rows)
        return pipeline

    def member(self, user_id, name):
        from kanban.models.member import Member
        self._save(Member(user_id=user_id, name=name))
        return user_id

    def lead(self, **kw):
        from kanban.models.lead import Lead
        kw.setdefault('id', self._id('lead'))
        kw.setdefault('full_name', 'Test Lead')
        kw.setdefault('phone_number', '0722000000')
        kw.setdefault('created_at', NOW - timedelta(days=1))
        self._save(Lead(**kw))
        return kw['id']

    def tag(self, lead_id, name, color='gray'):
        from kanban.models.lead import LeadTag, Tag
        tag_id = self._id('tag')
        self._save(Tag(id=tag_id, name=name, color=color))
        self._save(LeadTag(lead_id=lead_id, tag_id=tag_id))
        return tag_id

    def order(self, lead_id, **kw):
        from kanban.models.service_order import ServiceOrder
        kw.setdefault('id', self._id('so'))
        kw.setdefault('number', kw['id'].upper())
        kw.setdefault('created_at', NOW - timedelta(days=1))
        self._save(ServiceOrder(lead_id=lead_id, **kw))
        return kw['id']

    def tray(self, order_id, **kw):
        from kanban.models.tray import Tray
        kw.setdefault('id', self._id('tray'))
        kw.setdefault('number', kw['id'].upper())
        kw.setdefault('created_at', NOW - timedelta(days=1))
        self._save(Tray(service_order_id=order_id, **kw))
        return kw['id']

    def service(self, price=100.0, time=None, name='Service'):
        from kanban.models.service import Service
        service_id = self._id('svc')
        self._save(Service(id=service_id, name=name, price=price, time=time))
        return service_id

    def tray_item(self, tray_id, notes=None, **kw):
        from kanban.models.tray import TrayItem
        kw.setdefault('id', self._id('ti'))
        if isinstance(notes, dict):
            notes = json.dumps(notes)
        self._save(TrayItem(tray_id=tray_id, notes=notes, **kw))
        return kw['id']

    def place(self, entity_type, entity_id, pipeline, stage_name, moved_at=None):
        from kanban.models.pipeline import PipelineItem
        moved_at = moved_at or NOW - timedelta(hours=1)
        placement_id = self._id('pi')
        self._save(PipelineItem(
            id=placement_id, entity_type=entity_type, entity_id=entity_id,
            pipeline_id=pipeline.id, stage_id=pipeline.stage(stage_name),
            created_at=moved_at, updated_at=moved_at,
        ))
        return placement_id

    def event(self, entity_type, entity_id, event_type, at, payload=None, actor_name=None):
        from kanban.models.event import ItemEvent
        event_id = self._id('ev')
        self._save(ItemEvent(
            id=event_id, entity_type=entity_type, entity_id=entity_id, event_type=event_type,
            payload=payload, actor_name=actor_name, created_at=at,
        ))
        return event_id

    def placement_stage(self, entity_type, entity_id, pipeline):
        """Persisted stage id of an entity in a pipeline, or None."""
        from kanban.models.pipeline import PipelineItem
        self.session.expire_all()
        row = self.session.query(PipelineItem).filter_by(
            entity_type=entity_type, entity_id=entity_id, pipeline_id=pipeline.id,
        ).first()
        return row.stage_id if row else None


@pytest.fixture
def board(db_session):
    """Factory for pipelines, stages, leads, orders, trays, placements and events."""
    return BoardFactory(db_session)


@pytest.fixture
def sales(board):
    return board.pipeline('Vanzari', SALES_STAGES, position=0)


@pytest.fixture
def front_desk(board):
    return board.pipeline('Receptie', FRONT_DESK_STAGES, position=1)


@pytest.fixture
def saloane(board):
    return board.pipeline('Saloane', DEPARTMENT_STAGES, position=2)


@pytest.fixture
def frizerii(board):
    return board.pipeline('Frizerii', DEPARTMENT_STAGES, position=3)


@pytest.fixture
def quality(board):
    return board.pipeline('Quality', QUALITY_STAGES, position=9)


@pytest.fixture
def find_item():
    """Pick the single item for an entity id out of a projection list."""
    def _find(items, entity_id):
        matches = [i for i in items if i.id == entity_id]
        assert len(matches) <= 1, f'{entity_id} appears {len(matches)} times'
        return matches[0] if matches else None
    return _find
