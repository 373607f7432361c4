"""
Flask CLI commands.

Commands:
- flask init-db: create all tables
- flask create-user: create a login account
"""
import re

import click
from sqlalchemy.exc import SQLAlchemyError

from app.database import create_all, get_session
from app.models import AppUser

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table that does not exist yet."""
        create_all()
        click.echo(click.style('✅ 資料表已建立', fg='green'))

    @app.cli.command('create-user')
    @click.option('--email', prompt=True, help='Login email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
    @click.option('--full-name', default='', help='Display name')
    def create_user(email, password, full_name):
        """Create a user account."""
        if not re.match(EMAIL_PATTERN, email):
            click.echo(click.style('❌ 電子郵件格式不正確', fg='red'))
            return

        if len(password) < 8:
            click.echo(click.style('❌ 密碼長度至少需要 8 個字符', fg='red'))
            return

        db_session = get_session()
        email = email.strip().lower()
        if db_session.query(AppUser).filter_by(email=email).first():
            click.echo(click.style(f'❌ 此電子郵件已被註冊: {email}', fg='red'))
            return

        try:
            user = AppUser(email=email, full_name=full_name or None)
            user.set_password(password)
            db_session.add(user)
            db_session.commit()

            click.echo(click.style('\n✅ 使用者建立成功!', fg='green', bold=True))
            click.echo(f'   Email: {email}')
            click.echo(f'   ID: {user.id}')
        except SQLAlchemyError as e:
            db_session.rollback()
            click.echo(click.style(f'❌ 建立使用者失敗: {str(e)}', fg='red'))
