from datetime import datetime
from flask_login import UserMixin
from . import db
from sqlalchemy import UniqueConstraint

ROLE_ADMIN = 'ADMIN'
ROLE_OPERATOR = 'OPERATOR'
ROLE_QUALITY = 'QUALITY'
ROLES = (ROLE_ADMIN, ROLE_OPERATOR, ROLE_QUALITY)

UNIT_IN_PROGRESS = 'IN_PROGRESS'
UNIT_COMPLETED = 'COMPLETED'

PENDING = 'PENDING'
IN_PROGRESS = 'IN_PROGRESS'
COMPLETED = 'COMPLETED'

QUESTION_TYPES = ('YES_NO', 'TEXT', 'NUMBER')

DEFECT_OPEN = 'OPEN'
DEFECT_IN_REVIEW = 'IN_REVIEW'
DEFECT_RESOLVED = 'RESOLVED'
DEFECT_CLOSED = 'CLOSED'
DEFECT_STATUSES = (DEFECT_OPEN, DEFECT_IN_REVIEW, DEFECT_RESOLVED, DEFECT_CLOSED)
SEVERITIES = ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL')


def _iso(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=ROLE_OPERATOR)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_active(self):
        return self.active

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'active': self.active,
            'created_at': _iso(self.created_at),
        }


class Process(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    checklist_required = db.Column(db.Boolean, nullable=False, default=False)
    display_order = db.Column(db.Integer, nullable=False, default=0, index=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'checklist_required': self.checklist_required,
            'display_order': self.display_order,
            'active': self.active,
        }


class ChecklistTemplate(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    questions = db.relationship('ChecklistQuestion', back_populates='template',
                                order_by='ChecklistQuestion.display_order')

    def required_questions(self):
        return [q for q in self.questions if q.required]

    def to_dict(self, with_questions=True):
        d = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'active': self.active,
        }
        if with_questions:
            d['questions'] = [q.to_dict() for q in self.questions]
        return d


class ChecklistQuestion(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(db.Integer, db.ForeignKey('checklist_template.id'), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    question_type = db.Column(db.String(16), nullable=False, default='YES_NO')  # YES_NO, TEXT, NUMBER
    required = db.Column(db.Boolean, nullable=False, default=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    template = db.relationship('ChecklistTemplate', back_populates='questions')

    def to_dict(self):
        return {
            'id': self.id,
            'text': self.text,
            'question_type': self.question_type,
            'required': self.required,
            'display_order': self.display_order,
        }


class Unit(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    serial = db.Column(db.String(64), unique=True, nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=UNIT_IN_PROGRESS)  # IN_PROGRESS, COMPLETED
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    processes = db.relationship('ProcessInstance', back_populates='unit', cascade='all, delete-orphan',
                                order_by='ProcessInstance.display_order')
    defects = db.relationship('DefectLog', back_populates='unit', cascade='all, delete-orphan')

    def to_dict(self, detail=False):
        return {
            'id': self.id,
            'serial': self.serial,
            'status': self.status,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
            'completed_at': _iso(self.completed_at),
            'processes': [p.to_dict(detail=detail) for p in self.processes],
        }


class ProcessInstance(db.Model):
    __table_args__ = (UniqueConstraint('unit_id', 'process_id', name='uix_unit_process'),)
    id = db.Column(db.Integer, primary_key=True)
    unit_id = db.Column(db.Integer, db.ForeignKey('unit.id'), nullable=False, index=True)
    process_id = db.Column(db.Integer, db.ForeignKey('process.id'), nullable=False)
    template_id = db.Column(db.Integer, db.ForeignKey('checklist_template.id'), nullable=True)
    status = db.Column(db.String(16), default=PENDING, nullable=False)  # PENDING, IN_PROGRESS, COMPLETED
    display_order = db.Column(db.Integer, nullable=False, default=0)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    unit = db.relationship('Unit', back_populates='processes')
    process = db.relationship('Process')
    template = db.relationship('ChecklistTemplate')
    answers = db.relationship('Answer', back_populates='instance', cascade='all, delete-orphan')

    def to_dict(self, detail=False):
        d = {
            'id': self.id,
            'unit_id': self.unit_id,
            'process': self.process.to_dict(),
            'template_id': self.template_id,
            'status': self.status,
            'display_order': self.display_order,
            'started_at': _iso(self.started_at),
            'completed_at': _iso(self.completed_at),
        }
        if detail:
            d['template'] = self.template.to_dict() if self.template else None
            d['answers'] = [a.to_dict() for a in self.answers]
        return d


class Answer(db.Model):
    __table_args__ = (UniqueConstraint('instance_id', 'question_id', name='uix_instance_question'),)
    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(db.Integer, db.ForeignKey('process_instance.id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('checklist_question.id'), nullable=False)
    value = db.Column(db.Text, nullable=False, default='')
    answered_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    answered_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    instance = db.relationship('ProcessInstance', back_populates='answers')
    question = db.relationship('ChecklistQuestion')
    answered_by = db.relationship('User')
    defect = db.relationship('DefectLog', back_populates='answer', uselist=False, cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'question_id': self.question_id,
            'value': self.value,
            'answered_by': {'id': self.answered_by.id, 'name': self.answered_by.name} if self.answered_by else None,
            'answered_at': _iso(self.answered_at),
        }


class DefectLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    answer_id = db.Column(db.Integer, db.ForeignKey('answer.id'), unique=True, nullable=False)
    unit_id = db.Column(db.Integer, db.ForeignKey('unit.id'), nullable=False, index=True)
    category = db.Column(db.String(64), nullable=False, index=True)
    subcategory = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)
    severity = db.Column(db.String(16), nullable=False, default='LOW')  # LOW, MEDIUM, HIGH, CRITICAL
    status = db.Column(db.String(16), nullable=False, default=DEFECT_OPEN)  # OPEN, IN_REVIEW, RESOLVED, CLOSED
    resolved_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    answer = db.relationship('Answer', back_populates='defect')
    unit = db.relationship('Unit', back_populates='defects')
    resolved_by = db.relationship('User')

    def to_dict(self):
        instance = self.answer.instance
        return {
            'id': self.id,
            'answer_id': self.answer_id,
            'unit': {'id': self.unit.id, 'serial': self.unit.serial},
            'process': instance.process.name,
            'answer': self.answer.value,
            'answered_by': self.answer.answered_by.name if self.answer.answered_by else None,
            'category': self.category,
            'subcategory': self.subcategory,
            'description': self.description,
            'severity': self.severity,
            'status': self.status,
            'resolved_by': self.resolved_by.name if self.resolved_by else None,
            'resolved_at': _iso(self.resolved_at),
            'notes': self.notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
