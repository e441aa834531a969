"""
Flask CLI commands for the single database multi-tenant fee service
"""

import click
from flask import Flask
from db_single import create_school, list_schools, get_session, get_tenant_by_slug
from init_db import run_on_startup
from models import User, Tenant
import logging
from datetime import datetime

logger = logging.getLogger(__name__)


def _echo_money(label, amount):
    click.echo(f"  {label:<20} ₹{amount:,.2f}")


def register_cli_commands(app: Flask):
    """Register CLI commands with the Flask app"""

    @app.cli.command("setup-db")
    def setup_db_command():
        """Create database, tables, and default admin user"""
        click.echo("🚀 Setting up database...")
        if run_on_startup():
            click.echo("✅ Database setup completed successfully!")
        else:
            click.echo("❌ Database setup failed!")

    @app.cli.command("add-school")
    @click.option("--slug", required=True, help="URL-friendly school identifier (e.g., xyz)")
    @click.option("--name", required=True, help="Full school name (e.g., 'XYZ Public School')")
    def add_school_command(slug, name):
        """Add a new school to the system"""
        click.echo(f"🏫 Creating school: {name} ({slug})")

        success, message = create_school(slug, name)

        if success:
            click.echo(f"✅ {message}")
            click.echo(f"🌐 Fee API: /api/{slug}/")
        else:
            click.echo(f"❌ {message}")

    @app.cli.command("list-schools")
    def list_schools_command():
        """List all schools in the system"""
        schools = list_schools()
        if not schools:
            click.echo("📭 No schools found")
            return

        click.echo("🏫 Schools in system:")
        click.echo("-" * 60)
        for school in schools:
            click.echo(f"  {school.name}")
            click.echo(f"    Slug: {school.slug}")
            click.echo(f"    Status: {'Active' if school.is_active else 'Inactive'}")
            click.echo("-" * 60)

    @app.cli.command("create-school-admin")
    @click.option("--slug", required=True, help="School slug")
    @click.option("--username", required=True, help="Admin username")
    @click.option("--email", required=True, help="Admin email")
    @click.option("--password", required=True, help="Admin password")
    @click.option("--first-name", required=True, help="First name")
    @click.option("--last-name", required=True, help="Last name")
    def create_school_admin_command(slug, username, email, password, first_name, last_name):
        """Create a school admin user"""
        session = get_session()
        try:
            # Verify school exists
            school = session.query(Tenant).filter_by(slug=slug).first()
            if not school:
                click.echo(f"❌ School with slug '{slug}' not found")
                return

            # Check if username already exists
            existing = session.query(User).filter_by(username=username).first()
            if existing:
                click.echo(f"❌ Username '{username}' already exists")
                return

            admin = User(
                tenant_id=school.id,
                username=username,
                email=email,
                first_name=first_name,
                last_name=last_name,
                role='school_admin',
                is_active=True
            )
            admin.set_password(password)

            session.add(admin)
            session.commit()

            click.echo(f"✅ School admin created for {school.name}")
            click.echo(f"   Username: {username}")

        except Exception as e:
            session.rollback()
            click.echo(f"❌ Failed to create school admin: {e}")
        finally:
            session.close()

    # ===== FEE COMMANDS =====

    @app.cli.command("fee-summary")
    @click.option("--slug", required=True, help="School slug")
    @click.option("--student-id", required=True, type=int, help="Student ID")
    @click.option("--as-of", type=click.DateTime(formats=["%Y-%m-%d"]), help="Calculate as of this date (YYYY-MM-DD)")
    def fee_summary_command(slug, student_id, as_of):
        """Show calculated fees for one student"""
        from fee_helpers import build_fee_options, get_student_fee_details

        session = get_session()
        try:
            school = get_tenant_by_slug(session, slug)
            if not school:
                click.echo(f"❌ School with slug '{slug}' not found")
                return

            options = build_fee_options(as_of_date=as_of.date() if as_of else None)
            try:
                details = get_student_fee_details(session, school.id, student_id, options)
            except ValueError as e:
                click.echo(f"❌ {e}")
                return

            student = details['student']
            click.echo(f"🎓 {student['full_name']} ({student['admission_number']})")
            click.echo("-" * 80)
            for fee in details['fees']:
                click.echo(f"  {fee['fee_head_name']} / {fee['fee_term_name']}  due {fee['due_date'][:10]}")
                click.echo(
                    f"    Final ₹{fee['final_amount']:,.2f}  Paid ₹{fee['paid_amount']:,.2f}  "
                    f"Outstanding ₹{fee['outstanding_amount']:,.2f}  [{fee['status']}]"
                )
            click.echo("-" * 80)

            summary = details['summary']
            _echo_money("Total fees:", summary['total_fees'])
            _echo_money("Total paid:", summary['total_paid'])
            _echo_money("Outstanding:", summary['total_outstanding'])
            _echo_money("Late fees:", summary['total_late_fees'])
            _echo_money("Concessions:", summary['total_concessions'])
        finally:
            session.close()

    @app.cli.command("send-fee-reminders")
    @click.option("--slug", help="Only this school (default: all active schools)")
    def send_fee_reminders_command(slug):
        """Send due fee reminders over WhatsApp (for cron jobs)"""
        from fee_reminder_scheduler import process_fee_reminders, process_all_tenants

        click.echo(f"📬 Processing fee reminders at {datetime.now().isoformat()}...")

        if slug:
            session = get_session()
            try:
                school = get_tenant_by_slug(session, slug)
            finally:
                session.close()
            if not school:
                click.echo(f"❌ School with slug '{slug}' not found")
                return
            sent, skipped, errors = process_fee_reminders(school.id)
            if skipped:
                click.echo(f"⏭️  Skipped {skipped} reminder(s) already sent")
        else:
            sent, errors = process_all_tenants()

        if sent > 0:
            click.echo(f"✅ Sent {sent} fee reminder(s)")
        else:
            click.echo("📭 No fee reminders sent")

        if errors:
            click.echo("⚠️  Errors encountered:")
            for error in errors:
                click.echo(f"   - {error}")

    @app.cli.command("collection-targets")
    @click.option("--slug", required=True, help="School slug")
    @click.option("--as-of", type=click.DateTime(formats=["%Y-%m-%d"]), help="Report as of this date (YYYY-MM-DD)")
    def collection_targets_command(slug, as_of):
        """Show this month's collection progress"""
        from fee_helpers import get_collection_targets

        session = get_session()
        try:
            school = get_tenant_by_slug(session, slug)
            if not school:
                click.echo(f"❌ School with slug '{slug}' not found")
                return

            targets = get_collection_targets(session, school.id, as_of.date() if as_of else None)

            click.echo(f"📊 Collection targets for {school.name} ({targets['month']})")
            click.echo(f"  Day {targets['days_passed']} of {targets['days_in_month']}")
            _echo_money("Expected:", targets['total_expected'])
            _echo_money("Collected:", targets['collected_so_far'])
            _echo_money("Daily target:", targets['target_daily'])
            _echo_money("Remaining:", targets['target_remaining'])
            _echo_money("Projected:", targets['projected_total'])
            click.echo(f"  {'Collection rate:':<20} {targets['collection_rate']:.0%}")
            click.echo(f"  {'On track' if targets['on_track'] else 'Behind target'}")
        finally:
            session.close()
