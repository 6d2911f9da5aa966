import io, csv
from flask import Blueprint, request, jsonify, make_response, current_app, send_file
from flask_login import login_user, logout_user, login_required, current_user
from sqlalchemy.exc import SQLAlchemyError
from . import db, engine, stats
from .auth import current_principal
from .errors import TrackingError, InternalError, ValidationError
from .models import Unit, Process
from .report import XLSX_MIMETYPE, build_report, render_workbook

bp = Blueprint('main', __name__)


@bp.app_errorhandler(TrackingError)
def handle_tracking_error(e):
    if e.status >= 500:
        current_app.logger.error('%s %s failed: %s', request.method, request.path, e.message)
    return jsonify(e.to_dict()), e.status


@bp.app_errorhandler(SQLAlchemyError)
def handle_store_error(e):
    db.session.rollback()
    current_app.logger.exception('Store failure on %s %s', request.method, request.path)
    err = InternalError('Store failure')
    return jsonify(err.to_dict()), err.status


def _payload():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('JSON object body required')
    return data


@bp.route('/health')
def health():
    return jsonify({'ok': True})


# --- auth ------------------------------------------------------------------

@bp.route('/auth/login', methods=['POST'])
def login():
    data = _payload()
    user = engine.authenticate(data.get('email'), data.get('password'))
    login_user(user)
    current_app.logger.info('User %s logged in', user.email)
    return jsonify(user.to_dict())


@bp.route('/auth/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


@bp.route('/auth/me')
@login_required
def me():
    return jsonify(current_user.to_dict())


# --- dashboard -------------------------------------------------------------

@bp.route('/api/dashboard')
@login_required
def dashboard():
    return jsonify(stats.dashboard())


# --- units -----------------------------------------------------------------

@bp.route('/api/units', methods=['GET'])
@login_required
def list_units():
    units = engine.list_units(status=request.args.get('status'), search=request.args.get('search'))
    return jsonify([u.to_dict() for u in units])


@bp.route('/api/units', methods=['POST'])
@login_required
def create_unit():
    data = _payload()
    unit = engine.create_unit(current_principal(), data.get('serial'), data.get('notes'),
                              data.get('processes') or [])
    return jsonify(unit.to_dict()), 201


@bp.route('/api/units/<int:unit_id>', methods=['GET'])
@login_required
def get_unit(unit_id):
    return jsonify(engine.get_unit(unit_id).to_dict(detail=True))


@bp.route('/api/units/<int:unit_id>', methods=['DELETE'])
@login_required
def delete_unit(unit_id):
    engine.delete_unit(current_principal(), unit_id)
    return jsonify({'success': True})


@bp.route('/api/units/export.csv')
@login_required
def export_units():
    si = io.StringIO()
    w = csv.writer(si)
    processes = Process.query.filter_by(active=True).order_by(Process.display_order).all()
    # Header: serial, status, then for each process: "<Process> Status"
    header = ['serial', 'status']
    for p in processes:
        header.append(f"{p.name} Status")
    w.writerow(header)
    for u in Unit.query.order_by(Unit.serial).all():
        row = [u.serial, u.status]
        states = {pi.process_id: pi.status for pi in u.processes}
        for p in processes:
            row.append(states.get(p.id, ''))
        w.writerow(row)
    output = make_response(si.getvalue())
    output.headers["Content-Disposition"] = "attachment; filename=unit_status_export.csv"
    output.headers["Content-type"] = "text/csv"
    return output


# --- process instances -----------------------------------------------------

@bp.route('/api/units/<int:unit_id>/processes/<int:process_id>', methods=['GET'])
@login_required
def get_instance(unit_id, process_id):
    return jsonify(engine.get_instance(unit_id, process_id).to_dict(detail=True))


@bp.route('/api/units/<int:unit_id>/processes/<int:process_id>', methods=['POST'])
@login_required
def start_process(unit_id, process_id):
    instance = engine.start_process(current_principal(), unit_id, process_id)
    return jsonify(instance.to_dict(detail=True))


@bp.route('/api/units/<int:unit_id>/processes/<int:process_id>', methods=['PUT'])
@login_required
def submit_answers(unit_id, process_id):
    answers = _payload().get('answers')
    if not isinstance(answers, list):
        raise ValidationError('answers must be a list')
    instance = engine.submit_answers(current_principal(), unit_id, process_id, answers)
    return jsonify(instance.to_dict(detail=True))


@bp.route('/api/units/<int:unit_id>/processes/<int:process_id>/export')
@login_required
def export_instance(unit_id, process_id):
    report = build_report(unit_id, process_id, company=current_app.config['REPORT_COMPANY'])
    return send_file(
        io.BytesIO(render_workbook(report)),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=report.filename,
    )


# --- processes -------------------------------------------------------------

@bp.route('/api/processes', methods=['GET'])
@login_required
def list_processes():
    return jsonify([p.to_dict() for p in engine.list_processes()])


@bp.route('/api/processes', methods=['POST'])
@login_required
def create_process():
    return jsonify(engine.create_process(current_principal(), _payload()).to_dict()), 201


@bp.route('/api/processes/<int:process_id>', methods=['GET'])
@login_required
def get_process(process_id):
    return jsonify(engine.get_process(process_id).to_dict())


@bp.route('/api/processes/<int:process_id>', methods=['PUT'])
@login_required
def update_process(process_id):
    return jsonify(engine.update_process(current_principal(), process_id, _payload()).to_dict())


@bp.route('/api/processes/<int:process_id>', methods=['DELETE'])
@login_required
def delete_process(process_id):
    engine.delete_process(current_principal(), process_id)
    return jsonify({'success': True})


# --- checklist templates ---------------------------------------------------

@bp.route('/api/checklist-templates', methods=['GET'])
@login_required
def list_templates():
    return jsonify([t.to_dict() for t in engine.list_templates()])


@bp.route('/api/checklist-templates', methods=['POST'])
@login_required
def create_template():
    return jsonify(engine.create_template(current_principal(), _payload()).to_dict()), 201


@bp.route('/api/checklist-templates/<int:template_id>', methods=['GET'])
@login_required
def get_template(template_id):
    return jsonify(engine.get_template(template_id).to_dict())


@bp.route('/api/checklist-templates/<int:template_id>', methods=['PUT'])
@login_required
def update_template(template_id):
    return jsonify(engine.update_template(current_principal(), template_id, _payload()).to_dict())


@bp.route('/api/checklist-templates/<int:template_id>', methods=['DELETE'])
@login_required
def delete_template(template_id):
    engine.delete_template(current_principal(), template_id)
    return jsonify({'success': True})


# --- defects ---------------------------------------------------------------

@bp.route('/api/defects', methods=['GET'])
@login_required
def list_defects():
    defects = engine.list_defects(status=request.args.get('status'), category=request.args.get('category'),
                                  severity=request.args.get('severity'))
    return jsonify([d.to_dict() for d in defects])


@bp.route('/api/defects/stats')
@login_required
def defect_stats():
    return jsonify(stats.defect_stats())


@bp.route('/api/defects/<int:defect_id>', methods=['GET'])
@login_required
def get_defect(defect_id):
    return jsonify(engine.get_defect(defect_id).to_dict())


@bp.route('/api/defects/<int:defect_id>', methods=['PUT'])
@login_required
def update_defect(defect_id):
    return jsonify(engine.update_defect(current_principal(), defect_id, _payload()).to_dict())


@bp.route('/api/defects/<int:defect_id>', methods=['DELETE'])
@login_required
def delete_defect(defect_id):
    engine.delete_defect(current_principal(), defect_id)
    return jsonify({'success': True})


# --- users -----------------------------------------------------------------

@bp.route('/api/users', methods=['GET'])
@login_required
def list_users():
    return jsonify([u.to_dict() for u in engine.list_users(current_principal())])


@bp.route('/api/users', methods=['POST'])
@login_required
def create_user():
    return jsonify(engine.create_user(current_principal(), _payload()).to_dict()), 201
