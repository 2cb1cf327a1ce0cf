"""Management script for database migrations and billing maintenance tasks"""

import json
import os

import click
from dotenv import load_dotenv
from flask.cli import FlaskGroup
from flask_migrate import upgrade

load_dotenv()

from subsync import create_app
from subsync.billing.health_report import subscription_health_report
from subsync.extensions import db
from subsync.models import Account

app = create_app(os.getenv("FLASK_CONFIG", "development"))
cli = FlaskGroup(create_app=lambda: app)


@cli.command("init-db")
def init_db():
    """Initialize the database"""
    with app.app_context():
        db.create_all()
        print("✅ Database initialized successfully!")


@cli.command("drop-db")
def drop_db():
    """Drop all database tables"""
    confirmation = input("⚠️  Are you sure you want to drop all tables? (yes/no): ").lower()

    if confirmation == 'yes':
        with app.app_context():
            db.drop_all()
            print("✅ Database dropped successfully!")
    else:
        print("❌ Operation cancelled.")


@cli.command("create-account")
@click.argument("email")
def create_account(email):
    """Create a dashboard account (normally done by onboarding)"""
    with app.app_context():
        if Account.query.filter(db.func.lower(Account.email) == email.lower()).first():
            print(f"❌ Account with email '{email}' already exists!")
            return

        account = Account(email=email.strip().lower())
        db.session.add(account)
        db.session.commit()
        print(f"✅ Account created: {account.id}")


@cli.command("subscription-health")
@click.option("--sample-size", default=10, show_default=True, help="Rows listed per finding")
def subscription_health(sample_size):
    """Report inconsistent billing state"""
    with app.app_context():
        config = app.extensions["billing_config"]
        report = subscription_health_report(config.placeholder_prefix, sample_size)
        print(json.dumps(report, indent=2, default=str))


@cli.command("migrate-db")
def migrate_db():
    """Apply any pending database migrations"""
    print("🔄 Applying database migrations...")

    with app.app_context():
        try:
            upgrade()
            print("✅ Database migrations applied successfully!")
        except Exception as e:
            print(f"❌ Migration failed: {str(e)}")
            raise


if __name__ == "__main__":
    cli()
