"""
Board routes — JSON projection API consumed by the board UI.

Auth and role resolution live in front of this app; the acting user and
their privilege arrive as query parameters.
"""
from flask import Blueprint, request, jsonify

from kanban.config import ENTITY_TYPES
from kanban.projection.engine import project, project_by_type, project_single

bp = Blueprint('board', __name__)

_TRUE_VALUES = ('1', 'true', 'yes', 'on')


@bp.route('/health')
def health():
    return jsonify({'status': 'ok'})


# ── Projection API ───────────────────────────────────────────────────────────

@bp.route('/api/pipelines/<pipeline_id>/items')
def pipeline_items(pipeline_id):
    """All cards for a pipeline. Optional ?user_id=&privileged=&type=."""
    user_id = request.args.get('user_id') or None
    privileged = request.args.get('privileged', '').lower() in _TRUE_VALUES
    entity_type = request.args.get('type') or None

    if entity_type and entity_type not in ENTITY_TYPES:
        return jsonify({'items': [], 'error': f'Unknown entity type: {entity_type}'}), 400

    if entity_type:
        result = project_by_type(entity_type, pipeline_id, acting_user_id=user_id, is_privileged=privileged)
    else:
        result = project(pipeline_id, acting_user_id=user_id, is_privileged=privileged)

    # A failed projection is still a 200: the board shows an empty column set plus the error
    return jsonify({'items': [item.to_dict() for item in result.data], 'error': result.error})


@bp.route('/api/pipelines/<pipeline_id>/items/<entity_type>/<entity_id>')
def pipeline_item(pipeline_id, entity_type, entity_id):
    """One card at its persisted placement."""
    if entity_type not in ENTITY_TYPES:
        return jsonify({'item': None, 'error': f'Unknown entity type: {entity_type}'}), 400

    result = project_single(entity_type, entity_id, pipeline_id)
    if result.error:
        return jsonify({'item': None, 'error': result.error}), 500
    if result.data is None:
        return jsonify({'item': None, 'error': None}), 404
    return jsonify({'item': result.data.to_dict()})
