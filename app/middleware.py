"""Middleware for authentication context."""
from functools import wraps

from flask import current_app, flash, g, redirect, request, session, url_for
from sqlalchemy.exc import SQLAlchemyError

from app.database import get_session
from app.models import AppUser


def load_user():
    """
    Load the current user into ``g`` before each request.

    Sets ``g.user`` and ``g.user_id`` (None when anonymous). Every data
    query downstream is scoped by ``g.user_id``.
    """
    g.user = None
    g.user_id = None

    user_id = session.get('user_id')
    if not user_id:
        return

    try:
        user = get_session().query(AppUser).filter_by(id=user_id, active=True).first()
    except SQLAlchemyError as e:
        current_app.logger.error(f"Error in load_user: {e}")
        return

    if user:
        g.user = user
        g.user_id = user.id
    else:
        # Deleted or deactivated account
        session.pop('user_id', None)


def require_login(f):
    """
    Decorator: require a logged-in user.

    Redirects to the login page with ``next`` set; HTMX requests get an
    ``HX-Redirect`` header so the whole page navigates.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            login_url = url_for('auth.login', next=request.referrer if request.headers.get('HX-Request') else request.full_path)
            response = redirect(login_url)
            if request.headers.get('HX-Request'):
                response.headers['HX-Redirect'] = login_url
                return response

            flash('請先登入', 'warning')
            return response
        return f(*args, **kwargs)
    return decorated_function
