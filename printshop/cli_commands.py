"""
Flask CLI commands.

Commands:
- flask init-db: Create tables and seed the invoice number sequence
- flask create-admin: Create an admin user and print its API token
"""

import click
import re
from printshop import database
from printshop.models import AppUser, UserRole, RoleName, DocumentSequence, INVOICE_SEQUENCE


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables (schema migrations are managed outside the app)."""
        database.create_all()
        db_session = database.get_session()

        try:
            if not db_session.get(DocumentSequence, INVOICE_SEQUENCE):
                db_session.add(DocumentSequence(name=INVOICE_SEQUENCE, last_value=0))
                db_session.commit()
            click.echo(click.style('✅ Base de datos inicializada', fg='green'))
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error al inicializar la secuencia de facturas: {str(e)}', fg='red'))

    @app.cli.command('create-admin')
    @click.option('--email', prompt=True, help='Admin email address')
    @click.option('--name', default=None, help='Full name')
    def create_admin(email, name):
        """Create an admin user and print a fresh API token."""
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('❌ Email inválido. Use formato: user@example.com', fg='red'))
            return

        db_session = database.get_session()
        email = email.strip().lower()

        user = db_session.query(AppUser).filter_by(email=email).first()
        try:
            if user is None:
                user = AppUser(email=email, full_name=name)
                db_session.add(user)
                db_session.flush()
            if not user.is_admin:
                db_session.add(UserRole(user_id=user.id, role=RoleName.ADMIN.value))
            token = user.issue_api_token()
            db_session.commit()
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error al crear administrador: {str(e)}', fg='red'))
            return

        click.echo(click.style('\n✅ Administrador listo', fg='green', bold=True))
        click.echo(f'   Email: {email}')
        click.echo(f'   ID: {user.id}')
        click.echo(f'   Token: {token}')
        click.echo('\n💡 Guarda el token: no se puede recuperar.')
