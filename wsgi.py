"""WSGI entry point for Gunicorn (``gunicorn wsgi:app``)."""
import os

from app import create_app

# APP_CONFIG selects the config class, e.g. config.TestConfig for smoke runs
app = create_app(os.getenv('APP_CONFIG', 'config.Config'))

if __name__ == "__main__":
    app.run()
