"""Shared fixtures for the test suites."""

import unittest

from werkzeug.security import generate_password_hash

from trackbat import create_app, db
from trackbat.auth import Principal
from trackbat.models import ChecklistQuestion, ChecklistTemplate, Process, User, ROLE_ADMIN, ROLE_OPERATOR, ROLE_QUALITY

TEST_CONFIG = {
    'TESTING': True,
    'SECRET_KEY': 'test',
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'LOG_LEVEL': 'WARNING',
    'REPORT_COMPANY': 'TrackBat',
}

PASSWORD = 'secret123'


class TrackingTestCase(unittest.TestCase):
    """Fresh app and in-memory database per test, app context pushed."""

    def setUp(self):
        self.app = create_app(TEST_CONFIG)
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.create_all()
        self.admin = self.make_user('admin@test.com', ROLE_ADMIN)
        self.operator = self.make_user('operator@test.com', ROLE_OPERATOR)
        self.quality = self.make_user('quality@test.com', ROLE_QUALITY)
        db.session.commit()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    def make_user(self, email, role, name=None):
        user = User(email=email, name=name or email.split('@')[0].title(), role=role,
                    password_hash=generate_password_hash(PASSWORD, method='pbkdf2:sha256:1000'))
        db.session.add(user)
        db.session.flush()
        return user

    def principal(self, user):
        return Principal(user.id, user.role)

    def make_process(self, name, checklist_required=False, order=0):
        process = Process(name=name, checklist_required=checklist_required, display_order=order)
        db.session.add(process)
        db.session.commit()
        return process

    def make_template(self, name, questions):
        """``questions`` is a list of ``(text, required)`` or ``(text, required, type)``."""
        template = ChecklistTemplate(name=name)
        for i, q in enumerate(questions):
            text, required = q[0], q[1]
            qtype = q[2] if len(q) > 2 else 'YES_NO'
            template.questions.append(ChecklistQuestion(text=text, required=required, question_type=qtype,
                                                        display_order=i))
        db.session.add(template)
        db.session.commit()
        return template
