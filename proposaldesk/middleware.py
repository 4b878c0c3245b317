"""Middleware for resolving the acting user."""
from functools import wraps
from flask import session, g, current_app
from proposaldesk.database import get_session
from proposaldesk.exceptions import UnauthorizedError
from proposaldesk.models import AppUser


def load_actor():
    """
    Load the current actor into g.

    Identity is established upstream (the login flow puts user_id in the Flask
    session); here we only check the user still exists and is active.
    Sets g.user and g.user_id when authenticated.
    """
    g.user = None
    g.user_id = None

    try:
        user_id = session.get('user_id')
        if user_id:
            db_session = get_session()
            if not db_session:
                return

            user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
            if user:
                g.user = user
                g.user_id = user.id
    except Exception as e:
        # Avoid crashing the whole app if context loading fails
        current_app.logger.error(f"Error in load_actor: {e}")


def require_actor(f):
    """Decorator: reject the request with 401 JSON when no actor is loaded."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user_id') is None:
            raise UnauthorizedError()
        return f(*args, **kwargs)
    return decorated_function
