"""Production tracking operations.

Every mutating operation takes an explicit ``Principal`` and runs inside a
single store transaction: the answer upserts, defect updates and completion
propagation of one submission are committed together or not at all.
"""
import logging
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from . import db
from .auth import require_role
from .classify import classify_category, classify_severity, is_negative_answer
from .errors import ConflictError, InternalError, NotFound, TrackingError, Unauthorized, ValidationError
from .models import (
    Answer, ChecklistQuestion, ChecklistTemplate, DefectLog, Process, ProcessInstance, Unit, User,
    COMPLETED, IN_PROGRESS, PENDING, UNIT_COMPLETED,
    DEFECT_OPEN, DEFECT_CLOSED, DEFECT_RESOLVED, DEFECT_STATUSES, SEVERITIES, QUESTION_TYPES,
    ROLE_ADMIN, ROLE_OPERATOR, ROLE_QUALITY, ROLES,
)

log = logging.getLogger(__name__)

ANY_ROLE = ROLES
AUTO_CLOSE_NOTE = 'auto-closed - answer changed to positive'


@contextmanager
def transaction():
    try:
        yield db.session
        db.session.commit()
    except TrackingError:
        db.session.rollback()
        raise
    except IntegrityError as e:
        db.session.rollback()
        raise ValidationError('Duplicate or conflicting record') from e
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception('Store failure')
        raise InternalError('Store failure') from e


def _to_id(value, label):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {label}: {value!r}')


def _get_or_404(model, ident, label):
    obj = db.session.get(model, _to_id(ident, f'{label} id'))
    if obj is None:
        raise NotFound(f'{label} not found')
    return obj


def _required_text(data, key, label):
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f'{label} must be a string')
    value = (value or '').strip()
    if not value:
        raise ValidationError(f'{label} is required')
    return value


# --- units -----------------------------------------------------------------

def create_unit(principal, serial, notes=None, selections=()):
    """Create a unit and one process instance per selected process.

    ``selections`` is a list of ``{'process_id': ..., 'template_id': ...}``.
    Instances without a template are completed on creation; the unit is
    completed when every instance is.
    """
    require_role(principal, *ANY_ROLE)
    serial = _required_text({'serial': serial}, 'serial', 'Serial number')
    if not selections:
        raise ValidationError('At least one process must be selected')
    if Unit.query.filter_by(serial=serial).first():
        raise ValidationError(f'Serial number {serial} already exists')

    resolved = []
    seen = set()
    for sel in selections:
        if not isinstance(sel, dict):
            raise ValidationError('Each process selection must be an object')
        process = db.session.get(Process, _to_id(sel.get('process_id'), 'process id'))
        if process is None or not process.active:
            raise ValidationError(f'Unknown process {sel.get("process_id")!r}')
        if process.id in seen:
            raise ValidationError(f'Process "{process.name}" selected twice')
        seen.add(process.id)
        template = None
        if sel.get('template_id'):
            template = db.session.get(ChecklistTemplate, _to_id(sel['template_id'], 'template id'))
            if template is None or not template.active:
                raise ValidationError(f'Unknown checklist template {sel["template_id"]!r}')
        elif process.checklist_required:
            raise ValidationError(f'Process "{process.name}" requires a checklist template')
        resolved.append((process, template))

    now = datetime.utcnow()
    with transaction():
        unit = Unit(serial=serial, notes=notes or None)
        for i, (process, template) in enumerate(resolved):
            unit.processes.append(ProcessInstance(
                process=process,
                template=template,
                display_order=i,
                status=PENDING if template else COMPLETED,
                completed_at=None if template else now,
            ))
        db.session.add(unit)
        _propagate_unit(unit, now)
    log.info('Created unit %s with %d processes (status %s)', unit.serial, len(resolved), unit.status)
    return unit


def list_units(status=None, search=None):
    q = Unit.query
    if status and status != 'ALL':
        q = q.filter(Unit.status == status)
    if search:
        q = q.filter(Unit.serial.ilike(f'%{search}%'))
    return q.order_by(Unit.created_at.desc(), Unit.id.desc()).all()


def get_unit(unit_id):
    return _get_or_404(Unit, unit_id, 'Unit')


def delete_unit(principal, unit_id):
    require_role(principal, ROLE_ADMIN)
    unit = get_unit(unit_id)
    serial = unit.serial
    with transaction():
        db.session.delete(unit)
    log.info('Deleted unit %s', serial)


# --- process instances -----------------------------------------------------

def get_instance(unit_id, process_id):
    instance = ProcessInstance.query.filter_by(
        unit_id=_to_id(unit_id, 'unit id'), process_id=_to_id(process_id, 'process id')).first()
    if instance is None:
        raise NotFound('Process not found')
    return instance


def start_process(principal, unit_id, process_id):
    require_role(principal, *ANY_ROLE)
    instance = get_instance(unit_id, process_id)
    if instance.status != PENDING:
        raise ConflictError('Process already started')
    with transaction():
        instance.status = IN_PROGRESS
        instance.started_at = datetime.utcnow()
    log.info('Started %s on unit %s', instance.process.name, instance.unit.serial)
    return instance


def submit_answers(principal, unit_id, process_id, answers):
    """Upsert checklist answers, maintain defect logs and propagate completion.

    ``answers`` is a list of ``{'question_id': ..., 'value': ...}``. Values are
    stored as strings. Every question id is validated against the instance's
    template before anything is written.
    """
    require_role(principal, *ANY_ROLE)
    instance = get_instance(unit_id, process_id)
    if instance.template is None:
        raise ValidationError('Process has no checklist template')
    questions = {q.id: q for q in instance.template.questions}

    pairs = []
    for item in answers or ():
        if not isinstance(item, dict):
            raise ValidationError('Each answer must be an object')
        qid = _to_id(item.get('question_id'), 'question id')
        if qid not in questions:
            raise ValidationError(f'Question {qid} is not part of this checklist')
        value = item.get('value')
        pairs.append((questions[qid], '' if value is None else str(value)))

    now = datetime.utcnow()
    with transaction():
        if instance.status == PENDING:
            instance.status = IN_PROGRESS
            instance.started_at = now
        existing = {a.question.id: a for a in instance.answers}
        for question, value in pairs:
            answer = existing.get(question.id)
            if answer is None:
                answer = Answer(question=question, value=value, answered_by_id=principal.user_id, answered_at=now)
                instance.answers.append(answer)
                existing[question.id] = answer
            else:
                answer.value = value
                answer.answered_by_id = principal.user_id
                answer.answered_at = now
            _sync_defect(instance, answer, question, now)
        refresh_completion(instance, now)
    return instance


def _sync_defect(instance, answer, question, now):
    defect = answer.defect
    if is_negative_answer(answer.value):
        category, subcategory = classify_category(question.text)
        fields = dict(category=category, subcategory=subcategory, description=question.text,
                      severity=classify_severity(question.text), status=DEFECT_OPEN,
                      resolved_at=None, resolved_by_id=None, updated_at=now)
        if defect is None:
            answer.defect = DefectLog(unit=instance.unit, created_at=now, **fields)
            log.info('Opened %s defect on unit %s: %s', fields['severity'], instance.unit.serial, question.text)
        else:
            for key, value in fields.items():
                setattr(defect, key, value)
    elif defect is not None and defect.status != DEFECT_CLOSED:
        defect.status = DEFECT_CLOSED
        defect.resolved_at = now
        defect.notes = f'{defect.notes}\n{AUTO_CLOSE_NOTE}' if defect.notes else AUTO_CLOSE_NOTE
        defect.updated_at = now
        log.info('Auto-closed defect %s on unit %s', defect.id, instance.unit.serial)


def refresh_completion(instance, now=None):
    """Recompute completion of ``instance`` and its unit. Safe to re-run.

    Returns True if the instance moved to COMPLETED during this call.
    """
    now = now or datetime.utcnow()
    completed = False
    if instance.status != COMPLETED and instance.template is not None:
        required = {q.id for q in instance.template.required_questions()}
        answered = {a.question.id for a in instance.answers if a.value and a.value.strip()}
        if required and len(required & answered) >= len(required):
            instance.status = COMPLETED
            instance.completed_at = now
            completed = True
            log.info('Completed %s on unit %s', instance.process.name, instance.unit.serial)
    if instance.status == COMPLETED:
        _propagate_unit(instance.unit, now)
    return completed


def _propagate_unit(unit, now):
    if unit.status != UNIT_COMPLETED and unit.processes and all(p.status == COMPLETED for p in unit.processes):
        unit.status = UNIT_COMPLETED
        unit.completed_at = now
        log.info('Unit %s completed', unit.serial)


# --- processes -------------------------------------------------------------

def list_processes(include_inactive=False):
    q = Process.query
    if not include_inactive:
        q = q.filter_by(active=True)
    return q.order_by(Process.display_order, Process.id).all()


def get_process(process_id):
    return _get_or_404(Process, process_id, 'Process')


def create_process(principal, data):
    require_role(principal, ROLE_ADMIN)
    name = _required_text(data, 'name', 'Name')
    if Process.query.filter_by(name=name).first():
        raise ValidationError(f'Process "{name}" already exists')
    process = Process(
        name=name,
        description=data.get('description'),
        checklist_required=bool(data.get('checklist_required', False)),
        display_order=_to_id(data.get('display_order', 0), 'display order'),
    )
    with transaction():
        db.session.add(process)
    return process


def update_process(principal, process_id, data):
    require_role(principal, ROLE_ADMIN)
    process = get_process(process_id)
    with transaction():
        if 'name' in data:
            name = _required_text(data, 'name', 'Name')
            if name != process.name and Process.query.filter_by(name=name).first():
                raise ValidationError(f'Process "{name}" already exists')
            process.name = name
        if 'description' in data:
            process.description = data['description']
        if 'checklist_required' in data:
            process.checklist_required = bool(data['checklist_required'])
        if 'display_order' in data:
            process.display_order = _to_id(data['display_order'], 'display order')
        if 'active' in data:
            process.active = bool(data['active'])
    return process


def delete_process(principal, process_id):
    require_role(principal, ROLE_ADMIN)
    process = get_process(process_id)
    with transaction():
        process.active = False


# --- checklist templates ---------------------------------------------------

def _question_fields(item, index):
    if not isinstance(item, dict):
        raise ValidationError('Each question must be an object')
    text = _required_text(item, 'text', 'Question text')
    qtype = item.get('question_type') or 'YES_NO'
    if qtype not in QUESTION_TYPES:
        raise ValidationError(f'Invalid question type {qtype!r}')
    required = item.get('required')
    return dict(text=text, question_type=qtype, required=True if required is None else bool(required),
                display_order=index)


def list_templates():
    return ChecklistTemplate.query.filter_by(active=True).order_by(ChecklistTemplate.name).all()


def get_template(template_id):
    return _get_or_404(ChecklistTemplate, template_id, 'Template')


def create_template(principal, data):
    require_role(principal, ROLE_ADMIN)
    name = _required_text(data, 'name', 'Name')
    if ChecklistTemplate.query.filter_by(name=name).first():
        raise ValidationError(f'Template "{name}" already exists')
    template = ChecklistTemplate(name=name, description=data.get('description'))
    for i, item in enumerate(data.get('questions') or []):
        template.questions.append(ChecklistQuestion(**_question_fields(item, i)))
    with transaction():
        db.session.add(template)
    return template


def update_template(principal, template_id, data):
    """Edit a template. A ``questions`` list replaces the question set:
    entries with an ``id`` are edited in place, others are added, and omitted
    questions are removed unless they already hold answers.
    """
    require_role(principal, ROLE_ADMIN)
    template = get_template(template_id)
    with transaction():
        if 'name' in data:
            name = _required_text(data, 'name', 'Name')
            if name != template.name and ChecklistTemplate.query.filter_by(name=name).first():
                raise ValidationError(f'Template "{name}" already exists')
            template.name = name
        if 'description' in data:
            template.description = data['description']
        if 'active' in data:
            template.active = bool(data['active'])
        if data.get('questions') is not None:
            _replace_questions(template, data['questions'])
    return template


def _replace_questions(template, items):
    current = {q.id: q for q in template.questions}
    kept = set()
    for i, item in enumerate(items):
        fields = _question_fields(item, i)
        if item.get('id') is not None:
            qid = _to_id(item['id'], 'question id')
            if qid not in current:
                raise ValidationError(f'Question {qid} is not part of this template')
            for key, value in fields.items():
                setattr(current[qid], key, value)
            kept.add(qid)
        else:
            template.questions.append(ChecklistQuestion(**fields))
    for qid, question in current.items():
        if qid in kept:
            continue
        if Answer.query.filter_by(question_id=qid).count():
            raise ConflictError(f'Question {qid} has recorded answers and cannot be removed')
        template.questions.remove(question)
        db.session.delete(question)
    if len(kept) < len(current):
        now = datetime.utcnow()
        open_instances = ProcessInstance.query.filter(
            ProcessInstance.template_id == template.id, ProcessInstance.status != COMPLETED).all()
        for instance in open_instances:
            refresh_completion(instance, now)


def delete_template(principal, template_id):
    require_role(principal, ROLE_ADMIN)
    template = get_template(template_id)
    with transaction():
        template.active = False


# --- defects ---------------------------------------------------------------

def list_defects(status=None, category=None, severity=None):
    q = DefectLog.query
    if status:
        q = q.filter(DefectLog.status == status)
    if category:
        q = q.filter(DefectLog.category == category)
    if severity:
        q = q.filter(DefectLog.severity == severity)
    return q.order_by(DefectLog.created_at.desc(), DefectLog.id.desc()).all()


def get_defect(defect_id):
    return _get_or_404(DefectLog, defect_id, 'Defect')


def update_defect(principal, defect_id, data):
    require_role(principal, ROLE_QUALITY, ROLE_ADMIN)
    defect = get_defect(defect_id)
    status = data.get('status')
    severity = data.get('severity')
    if status and status not in DEFECT_STATUSES:
        raise ValidationError(f'Invalid defect status {status!r}')
    if severity and severity not in SEVERITIES:
        raise ValidationError(f'Invalid severity {severity!r}')
    now = datetime.utcnow()
    with transaction():
        if status:
            defect.status = status
            if status in (DEFECT_RESOLVED, DEFECT_CLOSED):
                defect.resolved_by_id = principal.user_id
                defect.resolved_at = now
        if severity:
            defect.severity = severity
        if 'notes' in data:
            defect.notes = data['notes']
        defect.updated_at = now
    return defect


def delete_defect(principal, defect_id):
    require_role(principal, ROLE_ADMIN)
    defect = get_defect(defect_id)
    with transaction():
        db.session.delete(defect)
    log.info('Deleted defect %s', defect_id)


# --- users -----------------------------------------------------------------

def list_users(principal):
    require_role(principal, ROLE_ADMIN)
    return User.query.order_by(User.name).all()


def create_user(principal, data):
    require_role(principal, ROLE_ADMIN)
    email = _required_text(data, 'email', 'Email').lower()
    name = _required_text(data, 'name', 'Name')
    password = data.get('password') or ''
    if not password:
        raise ValidationError('Password is required')
    role = data.get('role') or ROLE_OPERATOR
    if role not in ROLES:
        raise ValidationError(f'Invalid role {role!r}')
    if User.query.filter_by(email=email).first():
        raise ValidationError('Email already exists')
    user = User(email=email, name=name, role=role, password_hash=generate_password_hash(password))
    with transaction():
        db.session.add(user)
    return user


def authenticate(email, password):
    user = User.query.filter_by(email=(email or '').strip().lower()).first()
    if user is None or not user.active or not check_password_hash(user.password_hash, password or ''):
        raise Unauthorized('Invalid email or password')
    return user
