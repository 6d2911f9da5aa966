from collections import namedtuple
from flask_login import LoginManager, current_user

from . import db
from .errors import Forbidden, Unauthorized
from .models import User

Principal = namedtuple('Principal', ['user_id', 'role'])

login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    raise Unauthorized('Login required')


def current_principal():
    if not current_user.is_authenticated:
        raise Unauthorized('Login required')
    return Principal(current_user.id, current_user.role)


def require_role(principal, *roles):
    """Raise Forbidden unless ``principal`` holds one of ``roles``."""
    if principal is None:
        raise Unauthorized('Login required')
    if principal.role not in roles:
        raise Forbidden('Insufficient permissions')

