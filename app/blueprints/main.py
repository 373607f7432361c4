"""Main blueprint: landing redirect and health check."""
from flask import Blueprint, g, jsonify, redirect, url_for
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.database import get_session

main_bp = Blueprint('main', __name__)


@main_bp.route('/')
def index():
    if g.get('user') is None:
        return redirect(url_for('auth.login'))
    return redirect(url_for('quotes.list_quotes'))


@main_bp.route('/health')
def health():
    """
    Health check endpoint that validates database connection.

    Returns:
        200: Healthy (DB connected)
        500: Unhealthy (DB error)
    """
    try:
        row = get_session().execute(text("SELECT 1 as health_check")).fetchone()
    except SQLAlchemyError as e:
        return jsonify({
            'status': 'unhealthy',
            'database': 'disconnected',
            'error': str(e),
        }), 500

    if row and row[0] == 1:
        return jsonify({'status': 'healthy', 'database': 'connected'}), 200
    return jsonify({'status': 'unhealthy', 'database': 'error'}), 500
