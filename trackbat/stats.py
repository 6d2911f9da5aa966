from datetime import datetime, timedelta

from . import db
from .models import (
    DefectLog, Process, ProcessInstance, Unit,
    UNIT_COMPLETED, UNIT_IN_PROGRESS,
    DEFECT_OPEN, DEFECT_IN_REVIEW, DEFECT_RESOLVED, DEFECT_CLOSED,
)

ACTIVE_DEFECT = (DEFECT_OPEN, DEFECT_IN_REVIEW)


def _counts(column, *criteria):
    q = db.session.query(column, db.func.count(DefectLog.id)).filter(*criteria).group_by(column)
    return sorted(q.all(), key=lambda row: (-row[1], row[0]))


def dashboard():
    process_stats = db.session.query(ProcessInstance.status, db.func.count(ProcessInstance.id)) \
        .group_by(ProcessInstance.status).all()
    recent = Unit.query.order_by(Unit.created_at.desc(), Unit.id.desc()).limit(5).all()
    return {
        'total_units': Unit.query.count(),
        'in_progress_units': Unit.query.filter_by(status=UNIT_IN_PROGRESS).count(),
        'completed_units': Unit.query.filter_by(status=UNIT_COMPLETED).count(),
        'total_processes': Process.query.filter_by(active=True).count(),
        'recent_units': [u.to_dict() for u in recent],
        'process_stats': {status: count for status, count in process_stats},
    }


def defect_stats(now=None):
    """Summary counts, breakdowns and trend for the defect dashboard."""
    now = now or datetime.utcnow()
    month_ago = now - timedelta(days=30)
    week_ago = now - timedelta(days=7)

    trend = {}
    for (created_at,) in db.session.query(DefectLog.created_at).filter(DefectLog.created_at >= week_ago):
        key = created_at.date().isoformat()
        trend[key] = trend.get(key, 0) + 1

    top_units = db.session.query(Unit.serial, db.func.count(DefectLog.id)) \
        .join(DefectLog, DefectLog.unit_id == Unit.id) \
        .filter(DefectLog.status.in_(ACTIVE_DEFECT)) \
        .group_by(Unit.serial) \
        .order_by(db.func.count(DefectLog.id).desc(), Unit.serial) \
        .limit(5).all()

    recent = DefectLog.query.order_by(DefectLog.created_at.desc(), DefectLog.id.desc()).limit(10).all()

    return {
        'summary': {
            'total_open': DefectLog.query.filter_by(status=DEFECT_OPEN).count(),
            'total_in_review': DefectLog.query.filter_by(status=DEFECT_IN_REVIEW).count(),
            'total_resolved': DefectLog.query.filter(
                DefectLog.status.in_((DEFECT_RESOLVED, DEFECT_CLOSED))).count(),
            'critical_count': DefectLog.query.filter(
                DefectLog.severity == 'CRITICAL', DefectLog.status.in_(ACTIVE_DEFECT)).count(),
            'high_count': DefectLog.query.filter(
                DefectLog.severity == 'HIGH', DefectLog.status.in_(ACTIVE_DEFECT)).count(),
        },
        'by_status': [{'status': s, 'count': c} for s, c in _counts(DefectLog.status)],
        'by_category': [{'category': s, 'count': c}
                        for s, c in _counts(DefectLog.category, DefectLog.created_at >= month_ago)],
        'by_severity': [{'severity': s, 'count': c}
                        for s, c in _counts(DefectLog.severity, DefectLog.status.in_(ACTIVE_DEFECT))],
        'daily_trend': [{'date': d, 'count': trend[d]} for d in sorted(trend)],
        'recent_defects': [d.to_dict() for d in recent],
        'top_defect_units': [{'serial': s, 'count': c} for s, c in top_units],
    }
