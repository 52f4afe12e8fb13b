"""
Health check do serviço de automação: banco de dados e runs suspensos
"""
from datetime import datetime

from flask import Blueprint, current_app, jsonify
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from automation.database import db

bp = Blueprint('health', __name__, url_prefix='/api')

WAITING_STATUSES = ('waiting_timer', 'waiting_input')


def _waiting_runs():
    from automation.models import WorkflowRun

    rows = (
        db.session.query(WorkflowRun.status, func.count(WorkflowRun.id))
        .filter(WorkflowRun.status.in_(WAITING_STATUSES))
        .group_by(WorkflowRun.status)
        .all()
    )
    counts = {status: 0 for status in WAITING_STATUSES}
    counts.update({status: count for status, count in rows})
    return counts


@bp.route('/health', methods=['GET'])
def health_check():
    """Verifica o banco e informa quantos runs aguardam timer ou resposta"""
    checked_at = datetime.utcnow().isoformat()

    try:
        db.session.execute(text('SELECT 1'))
        waiting = _waiting_runs()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Health check falhou: {e}")
        return jsonify({
            'status': 'unhealthy',
            'database': 'unreachable',
            'error': str(e),
            'timestamp': checked_at,
        }), 503

    return jsonify({
        'status': 'healthy',
        'database': 'ok',
        'waiting_runs': waiting,
        'max_steps_per_run': current_app.config.get('MAX_STEPS_PER_RUN'),
        'timestamp': checked_at,
    }), 200
