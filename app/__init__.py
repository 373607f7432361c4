"""Flask application factory."""
import os
import traceback

from flask import Flask, flash, jsonify, redirect, render_template, request
from flask_wtf.csrf import CSRFError, CSRFProtect
from markupsafe import Markup, escape

from app.database import init_db


def _rich_text(value):
    """Jinja filter: description text with the bold runs marked up."""
    from app.utils.rich_text import parse_bold_runs

    parts = []
    for run in parse_bold_runs(value):
        text = escape(run.text)
        parts.append(Markup('<strong>%s</strong>') % text if run.bold else text)
    return Markup('').join(parts)


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        if request.is_json or request.headers.get('HX-Request'):
            return jsonify({'status': 'error', 'message': '頁面已過期，請重新整理'}), 400
        flash('表單已過期，請重新送出', 'warning')
        return redirect(request.referrer or '/')

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    from app.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Behind Nginx in production
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    init_db(app)

    # Jinja filters: every rendering context formats through the same helpers
    from app.utils.formatters import date_tw, datetime_tw, format_currency, format_percent, num_tw
    from app.models import QuoteStatus
    app.jinja_env.filters['money_tw'] = format_currency
    app.jinja_env.filters['num_tw'] = num_tw
    app.jinja_env.filters['percent'] = format_percent
    app.jinja_env.filters['date_tw'] = date_tw
    app.jinja_env.filters['datetime_tw'] = datetime_tw
    app.jinja_env.filters['rich_text'] = _rich_text

    from app.middleware import load_user

    @app.before_request
    def before_request_handler():
        """Load the user context for each request."""
        load_user()

    @app.context_processor
    def inject_status_choices():
        return {'quote_statuses': list(QuoteStatus)}

    # Error handlers
    from app.exceptions import SaasError

    @app.errorhandler(SaasError)
    def handle_saas_error(error):
        """Handle application exceptions (JSON, HTMX fragment or flash + redirect)."""
        app.logger.error(f"SaasError [{error.status_code}]: {error.message}")

        if request.headers.get('HX-Request') == 'true':
            return render_template('partials/_alert.html', message=error.message, category='danger'), error.status_code

        if request.is_json or request.accept_mimetypes.best == 'application/json':
            return jsonify(error.to_dict()), error.status_code

        if error.status_code == 404:
            return render_template('errors/404.html', message=error.message), 404

        flash(error.message, 'danger')
        return redirect(request.referrer or '/')

    @app.errorhandler(404)
    def not_found_error(error):
        if request.is_json:
            return jsonify({'status': 'error', 'message': 'Not Found'}), 404
        return render_template('errors/404.html'), 404

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        from werkzeug.exceptions import HTTPException
        if isinstance(error, HTTPException) and error.code != 500:
            return error

        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")

        if request.is_json:
            return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

        if request.headers.get('HX-Request') == 'true':
            return render_template('partials/_alert.html', message='系統發生錯誤，請稍後再試', category='danger'), 500

        return render_template('errors/500.html'), 500

    # Register blueprints
    from app.blueprints.auth import auth_bp
    from app.blueprints.main import main_bp
    from app.blueprints.quotes import quotes_bp
    from app.blueprints.customers import customers_bp
    from app.blueprints.products import products_bp
    from app.blueprints.staff import staff_bp
    from app.blueprints.banks import banks_bp
    from app.blueprints.settings import settings_bp
    from app.blueprints.public import public_bp
    from app.blueprints.metrics import metrics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(quotes_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(staff_bp)
    app.register_blueprint(banks_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(metrics_bp)

    from app.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
