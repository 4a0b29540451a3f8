#!/usr/bin/env python3
"""
Confidence Pick'em Management CLI

This script provides command-line management functionality for the pick'em application.
"""

import json
import logging
import os

import click
from flask.cli import with_appcontext
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

# One-off commands should not start the background reconcile jobs
os.environ.setdefault("SCHEDULER_ENABLED", "False")

from pickem import create_app, db  # noqa: E402
from pickem.errors import PickemError  # noqa: E402
from pickem.models import Game, Pick, Score, User  # noqa: E402
from pickem.services.score_service import ScoreService  # noqa: E402
from pickem.utils.data_sync import GameSync  # noqa: E402
from pickem.utils.seeding import seed_week_picks  # noqa: E402
from pickem.utils.timezone_utils import ensure_utc  # noqa: E402

app = create_app()


@click.group()
def cli():
    """Confidence Pick'em Management CLI"""
    pass


# Score Commands
@cli.group()
def scores():
    """Score management commands"""
    pass


@scores.command()
@click.argument("season")
@click.argument("week", type=click.IntRange(1, 18))
@with_appcontext
def recompute(season, week):
    """Recompute every affected user's score for a week"""
    try:
        summary = ScoreService().recalculate_week(season, week)
        click.echo(
            f"✅ {season} week {week}: {summary['users']} users, "
            f"{summary['updated']} updated, {summary['unchanged']} unchanged"
        )
        for failure in summary["errors"]:
            click.echo(f"❌ User {failure['user_id']}: {failure['error']}")

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error recomputing scores: {str(e)}")
        logging.error(f"Score recompute failed - SQL error: {e}")


@scores.command("list")
@click.argument("season")
@click.argument("week", type=click.IntRange(1, 18))
@with_appcontext
def list_scores(season, week):
    """Show a week's ranked scores"""
    rows = Score.get_week_scores(season, week)

    if not rows:
        click.echo("No scores found.")
        return

    click.echo(f"Scores for {season} week {week}:")
    for rank, score in enumerate(rows, start=1):
        name = score.user.display_name if score.user else score.user_id
        click.echo(
            f"  {rank:>2}. {name}: {score.points} pts "
            f"({score.correct_picks}/{score.total_picks})"
        )


# Data Sync Commands
@cli.group()
def sync():
    """Data synchronization commands"""
    pass


@sync.command()
@click.argument("records_file", type=click.File("r"))
@with_appcontext
def games(records_file):
    """Upsert games from a JSON file of normalized game records"""
    try:
        records = json.load(records_file)
    except json.JSONDecodeError as e:
        click.echo(f"❌ Invalid JSON: {e}")
        return

    if isinstance(records, dict):
        records = records.get("games", [])

    try:
        summary = GameSync().upsert_games(records)
    except SQLAlchemyError as e:
        click.echo(f"❌ Database error syncing games: {str(e)}")
        return

    click.echo(
        f"✅ Games: {summary['created']} created, {summary['updated']} updated, "
        f"{summary['unchanged']} unchanged, {summary['skipped']} skipped"
    )
    for error in summary["errors"]:
        click.echo(f"⚠️  Record {error['index']}: {error['error']}")
    for week in summary["recalculated"]:
        click.echo(f"🔁 Recalculated {week['season']} week {week['week']}")


# Accounts and API tokens
@cli.group()
def user():
    """Accounts and API tokens"""


@user.command()
@click.argument("username")
@click.argument("email")
@click.option("--display-name", help="Display name")
@click.option("--admin", is_flag=True, help="Allow operator endpoints")
@with_appcontext
def create(username, email, display_name, admin):
    """Create a user and print their API token"""
    if User.query.filter((User.username == username) | (User.email == email)).count():
        click.echo(f"❌ '{username}' or '{email}' is already registered")
        return

    try:
        new_user, token = User.create_user(
            username, email, display_name=display_name, is_admin=admin
        )
        db.session.commit()
    except IntegrityError as e:
        # lost a race with another registration
        db.session.rollback()
        logging.error(f"User creation failed for {username}: {e}")
        click.echo(f"❌ '{username}' or '{email}' is already registered")
        return

    kind = "admin" if new_user.is_admin else "player"
    click.echo(f"✅ Created {kind} '{username}' <{email}>")
    click.echo(f"🔑 API token (shown once): {token}")


@user.command()
@click.argument("username")
@with_appcontext
def rotate_token(username):
    """Replace a user's API token; the old one stops working at once"""
    account = User.query.filter_by(username=username).first()
    if account is None:
        click.echo(f"❌ No user named '{username}'")
        return

    token = account.issue_api_token()
    db.session.commit()
    click.echo(f"🔑 New API token for '{username}': {token}")


@user.command()
@with_appcontext
def list_users():
    """Show every account, newest first"""
    accounts = User.query.order_by(User.created_at.desc()).all()
    if not accounts:
        click.echo("No accounts yet.")
        return

    for account in accounts:
        marker = "🟢" if account.is_active else "🔴"
        role = " [admin]" if account.is_admin else ""
        click.echo(f"{marker} {account.username:<20} {account.email}{role}")


# Seed Commands
@cli.group()
def seed():
    """Test data commands"""
    pass


@seed.command()
@click.argument("season")
@click.argument("week", type=click.IntRange(1, 18))
@click.option("--users", "user_count", default=5, show_default=True, help="Seed users")
@click.option(
    "--as-of",
    type=click.DateTime(formats=["%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"]),
    help="Treat this UTC time as now when checking locks",
)
@with_appcontext
def picks(season, week, user_count, as_of):
    """Seed random picks for a week through the allocation engine"""
    try:
        summary = seed_week_picks(
            season, week, user_count, as_of=ensure_utc(as_of) if as_of else None
        )
    except PickemError as e:
        click.echo(f"❌ {e.message}")
        return

    click.echo(
        f"✅ Seeded {summary['picks_created']} picks for {summary['users']} users "
        f"({summary['skipped']} skipped)"
    )


# Schema
@cli.group()
def db_cmd():
    """Create or wipe the schema"""


@db_cmd.command()
@with_appcontext
def init_db():
    """Create any missing tables"""
    try:
        db.create_all()
    except SQLAlchemyError as e:
        click.echo(f"❌ Could not create tables: {e}")
        return
    click.echo("✅ Tables ready")


@db_cmd.command()
@click.confirmation_option(prompt="Drop every table, including all picks and scores?")
@with_appcontext
def reset():
    """Drop and recreate all tables"""
    try:
        db.drop_all()
        db.create_all()
    except SQLAlchemyError as e:
        click.echo(f"❌ Reset failed: {e}")
        return
    click.echo("✅ Empty schema recreated")


@cli.command()
@with_appcontext
def status():
    """Database reachability and row counts"""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        click.echo(f"❌ Database unreachable: {e}")
        return

    final_games = Game.query.filter_by(status="final").count()
    open_picks = Pick.query.filter_by(confidence_points=0).count()

    click.echo("🏈 Confidence Pick'em")
    click.echo(f"👥 Active users: {User.query.filter_by(is_active=True).count()}")
    click.echo(f"🏈 Games: {final_games}/{Game.query.count()} final")
    click.echo(f"📝 Picks: {Pick.query.count()} ({open_picks} without confidence)")
    click.echo(f"📊 Score rows: {Score.query.count()}")


if __name__ == "__main__":
    with app.app_context():
        cli()
