"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-user: Create a platform user (optionally an admin)
- flask reconcile-coins: Compare cached coin balances with the ledger
"""

import click
import re
from roomshop import database
from roomshop.models import User
from roomshop.services import coin_service


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        database.create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-user')
    @click.option('--email', prompt=True, help='User email address')
    @click.option('--name', prompt=True, help='Display name')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
    @click.option('--admin', is_flag=True, default=False, help='Grant admin rights (deposit review)')
    def create_user(email, name, password, admin):
        """Create a new platform user."""
        db_session = database.get_session()

        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('Invalid email. Use the form user@example.com', fg='red'))
            return

        if len(password) < 6:
            click.echo(click.style('Password must be at least 6 characters.', fg='red'))
            return

        if db_session.query(User).filter_by(email=email).first():
            click.echo(click.style(f'A user with email {email} already exists', fg='red'))
            return

        try:
            user = User(email=email, name=name, is_admin=admin)
            user.set_password(password)
            db_session.add(user)
            db_session.commit()

            click.echo(click.style('\nUser created.', fg='green', bold=True))
            click.echo(f'   Email: {email}')
            click.echo(f'   ID: {user.id}')
            click.echo(f'   Admin: {"yes" if admin else "no"}')

        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'Error creating user: {str(e)}', fg='red'))

    @app.cli.command('reconcile-coins')
    @click.option('--fix', is_flag=True, default=False, help='Reset drifting balances to the ledger sum')
    @click.option('--user-id', type=int, default=None, help='Only check this user')
    def reconcile_coins(fix, user_id):
        """Report users whose cached coins differ from their ledger."""
        db_session = database.get_session()
        query = db_session.query(User).order_by(User.id)
        if user_id:
            query = query.filter(User.id == user_id)

        drifting = 0
        for user in query.all():
            result = coin_service.reconcile_user_coins(db_session, user, fix=fix)
            if result['drift']:
                drifting += 1
                status = 'fixed' if result['fixed'] else 'drift'
                click.echo(click.style(
                    f"user {result['user_id']}: cached={result['cached_coins']} "
                    f"ledger={result['ledger_coins']} ({status})",
                    fg='yellow'
                ))

        if drifting:
            click.echo(click.style(f'{drifting} user(s) out of sync with the ledger.', fg='yellow', bold=True))
        else:
            click.echo(click.style('All coin balances match the ledger.', fg='green'))
