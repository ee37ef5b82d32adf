"""
Flask CLI commands.

Commands:
- flask init-db: Create the database tables
- flask low-stock: Print products at or below their low-stock alert
- flask issue-token: Sign a bearer token for local testing
"""

import click
from flask import current_app
from atelier.database import create_all, get_session
from atelier.middleware import ROLES, issue_token
from atelier.services import stock_service


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables that do not exist yet."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('low-stock')
    @click.option('--limit', type=int, default=None, help='Maximum number of products to list')
    def low_stock_command(limit):
        """List products whose stock reached the alert threshold."""
        products = stock_service.get_low_stock_products(get_session(), limit=limit)
        if not products:
            click.echo(click.style('No products with low stock.', fg='green'))
            return

        for row in products:
            color = 'red' if row['stockStatus'] == 'NEGATIVE' else 'yellow'
            click.echo(click.style(
                f"{row['code']:<12} {row['description']:<40} stock={row['stock']:>5} "
                f"alert={row['lowStockAlert']:>5} {row['stockStatus']}",
                fg=color
            ))

    @app.cli.command('issue-token')
    @click.option('--username', prompt=True, help='Name stored in the token')
    @click.option('--role', type=click.Choice(ROLES, case_sensitive=False), default='USER')
    @click.option('--expires-in', type=int, default=3600, help='Lifetime in seconds')
    def issue_token_command(username, role, expires_in):
        """Sign a bearer token with SECRET_KEY (development only)."""
        token = issue_token(
            username,
            role,
            current_app.config['SECRET_KEY'],
            expires_in=expires_in,
            algorithm=current_app.config.get('AUTH_ALGORITHM', 'HS256')
        )
        click.echo(token)
