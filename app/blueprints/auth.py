"""
Authentication blueprint.
Handles user registration, login and logout.
"""
import logging
import re
from typing import Dict, Union

from flask import Blueprint, Response, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.database import get_session
from app.models import AppUser

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def is_valid_email(email: str) -> bool:
    """Validate email format."""
    return EMAIL_PATTERN.match(email) is not None


def password_problem(password: str):
    """Message describing why a password is too weak, or None."""
    if len(password) < 8:
        return '密碼長度至少需要 8 個字符'
    kinds = [
        re.search(r'[a-z]', password),
        re.search(r'[A-Z]', password),
        re.search(r'\d', password),
        re.search(r'[!@#$%^&*(),.?":{}|<>]', password),
    ]
    if sum(1 for k in kinds if k) < 2:
        return '密碼需要包含至少兩種類型的字符（大寫字母、小寫字母、數字、特殊字符）'
    return None


def _validate_registration_form(form) -> Dict[str, str]:
    """Validate registration form fields; errors keyed by field name."""
    errors = {}
    email = form.get('email', '').strip()
    password = form.get('password', '')

    if not email or not is_valid_email(email):
        errors['email'] = '電子郵件格式不正確'

    problem = password_problem(password)
    if problem:
        errors['password'] = problem

    if password != form.get('password_confirm', ''):
        errors['password_confirm'] = '兩次輸入的密碼不一致'

    return errors


def _safe_next(next_url):
    # Only same-site relative paths
    if next_url and next_url.startswith('/') and not next_url.startswith('//'):
        return next_url
    return None


@auth_bp.route('/register', methods=['GET', 'POST'])
def register() -> Union[str, Response]:
    """Registration page."""
    if g.user:
        return redirect(url_for('quotes.list_quotes'))

    form = request.form
    if request.method == 'POST':
        errors = _validate_registration_form(form)
        if errors:
            return render_template('auth/register.html', form=form, errors=errors), 400

        db_session = get_session()
        email = form.get('email', '').strip().lower()
        try:
            user = AppUser(email=email, full_name=form.get('full_name', '').strip() or None, active=True)
            user.set_password(form.get('password', ''))
            db_session.add(user)
            db_session.commit()
        except IntegrityError:
            db_session.rollback()
            errors = {'email': '此電子郵件已被註冊'}
            return render_template('auth/register.html', form=form, errors=errors), 400

        session.clear()
        session['user_id'] = user.id
        session.permanent = True
        logger.info(f"[AUTH] Registered user={user.id}")
        flash('註冊成功，歡迎使用報價系統', 'success')
        return redirect(url_for('quotes.list_quotes'))

    return render_template('auth/register.html', form=form, errors={})


@auth_bp.route('/login', methods=['GET', 'POST'])
def login() -> Union[str, Response]:
    """Login page - validates email + password."""
    if g.user:
        return redirect(url_for('quotes.list_quotes'))

    if request.method == 'POST':
        email = request.form.get('email', '').strip()
        password = request.form.get('password', '')

        if not email or not password:
            flash('請輸入電子郵件和密碼', 'danger')
            return render_template('auth/login.html', email=email), 400

        user = get_session().query(AppUser).filter(func.lower(AppUser.email) == email.lower()).first()
        if not user or not user.active or not user.check_password(password):
            flash('電子郵件或密碼錯誤', 'danger')
            return render_template('auth/login.html', email=email), 401

        session.clear()
        session['user_id'] = user.id
        session.permanent = True
        logger.info(f"[AUTH] Login user={user.id}")
        return redirect(_safe_next(request.args.get('next')) or url_for('quotes.list_quotes'))

    return render_template('auth/login.html', email='')


@auth_bp.route('/logout', methods=['GET', 'POST'])
def logout() -> Response:
    """Clear the session and go back to the login page."""
    session.clear()
    return redirect(url_for('auth.login', logged_out='1'))
