"""
Fee Reminder Scheduler
Sends WhatsApp fee reminders to guardians of students with overdue fees.

This module can be used in two ways:
1. As a CLI command: `flask send-fee-reminders` (for cron jobs)
2. As a background thread (for development or simple deployments)

A reminder tier is sent at most once per student fee. Failed sends are
retried on later runs, up to MAX_FAILED_ATTEMPTS logged failures per tier.
"""

import logging
import threading
from datetime import datetime, date
from typing import Tuple, List

from sqlalchemy import func

from db_single import get_session
from models import Tenant
from fee_models import FeeReminderLog, ReminderTypeEnum
from fee_helpers import get_fee_reminders
from whatsapp_helper import send_whatsapp_message, is_whatsapp_configured

logger = logging.getLogger(__name__)

MAX_FAILED_ATTEMPTS = 3


def _log_counts(session, student_fee_id: int, reminder_type: ReminderTypeEnum) -> Tuple[int, int]:
    """(sent, failed) log rows for one student fee and tier"""
    rows = session.query(FeeReminderLog.status, func.count(FeeReminderLog.id)).filter(
        FeeReminderLog.student_fee_id == student_fee_id,
        FeeReminderLog.reminder_type == reminder_type
    ).group_by(FeeReminderLog.status).all()
    counts = dict(rows)
    return counts.get('sent', 0), counts.get('failed', 0)


def process_fee_reminders(tenant_id: int, as_of_date: date = None, settings=None) -> Tuple[int, int, List[str]]:
    """
    Send due fee reminders for one school.

    Nothing is logged when WhatsApp is not configured or a guardian has no
    phone number, so repeated runs do not pile up failed rows.

    Args:
        tenant_id: The school to process
        as_of_date: Date overdue days are counted to (default today)
        settings: Configuration carrying the WHATSAPP_* values (default Config)

    Returns:
        Tuple of (reminders_sent, reminders_skipped, list_of_errors)
    """
    if not is_whatsapp_configured(settings):
        logger.warning(f"WhatsApp not configured, no fee reminders sent for tenant {tenant_id}")
        return 0, 0, ['WhatsApp not configured']

    session = get_session()
    errors = []
    sent = 0
    skipped = 0

    try:
        reminders = get_fee_reminders(session, tenant_id, as_of_date=as_of_date)
        logger.info(f"Found {len(reminders)} fee reminders for tenant {tenant_id}")

        for reminder in reminders:
            student_fee_id = int(reminder['fee_structure_id'])
            reminder_type = ReminderTypeEnum(reminder['reminder_type'])
            label = f"{reminder['student_name']} ({reminder['fee_head_name']})"

            if not reminder['guardian_phone']:
                errors.append(f"{label}: No guardian phone number")
                continue

            sent_count, failed_count = _log_counts(session, student_fee_id, reminder_type)
            if sent_count or failed_count >= MAX_FAILED_ATTEMPTS:
                skipped += 1
                continue

            log_entry = FeeReminderLog(
                tenant_id=tenant_id,
                student_id=reminder['student_id'],
                student_fee_id=student_fee_id,
                reminder_type=reminder_type,
                days_overdue=reminder['days_overdue'],
                recipient_phone=reminder['guardian_phone'],
                message_content=reminder['message_template'],
                status='pending'
            )
            session.add(log_entry)

            result = send_whatsapp_message(reminder['guardian_phone'], reminder['message_template'], settings)

            if result['success']:
                log_entry.status = 'sent'
                log_entry.provider_message_id = result.get('message_id')
                log_entry.sent_at = datetime.now()
                sent += 1
            else:
                log_entry.status = 'failed'
                log_entry.error_message = result.get('error')
                errors.append(f"{label}: {result.get('error')}")

            session.commit()

        return sent, skipped, errors

    except Exception as e:
        session.rollback()
        logger.error(f"Error processing fee reminders for tenant {tenant_id}: {e}")
        errors.append(str(e))
        return sent, skipped, errors
    finally:
        session.close()


def process_all_tenants(as_of_date: date = None, settings=None) -> Tuple[int, List[str]]:
    """
    Send due fee reminders for every active school.

    Returns:
        Tuple of (reminders_sent, list_of_errors)
    """
    session = get_session()
    try:
        tenant_ids = [t.id for t in session.query(Tenant).filter_by(is_active=True).order_by(Tenant.id).all()]
    finally:
        session.close()

    total_sent = 0
    errors = []
    for tenant_id in tenant_ids:
        sent, _, tenant_errors = process_fee_reminders(tenant_id, as_of_date, settings)
        total_sent += sent
        errors.extend(f"Tenant {tenant_id}: {error}" for error in tenant_errors)

    return total_sent, errors


# ===== BACKGROUND SCHEDULER (for development/simple deployments) =====

_scheduler_thread = None
_stop_event = None


def _run_scheduler(stop_event: threading.Event, interval_seconds: int):
    logger.info(f"Fee reminder scheduler started (running every {interval_seconds}s)")

    while not stop_event.is_set():
        try:
            sent, errors = process_all_tenants()
            if sent > 0:
                logger.info(f"Scheduler: Sent {sent} fee reminders")
            for error in errors:
                logger.error(f"Scheduler error: {error}")
        except Exception as e:
            logger.error(f"Scheduler loop error: {e}")

        stop_event.wait(interval_seconds)

    logger.info("Fee reminder scheduler stopped")


def start_background_scheduler(interval_seconds: int = 3600):
    """
    Start a background thread that sends due fee reminders periodically.

    A thread left over from an earlier stop is joined first, so only one
    loop ever runs.

    Args:
        interval_seconds: How often to run (default: hourly)
    """
    global _scheduler_thread, _stop_event

    if is_scheduler_running():
        logger.warning("Fee reminder scheduler is already running")
        return

    if _scheduler_thread is not None:
        _stop_event.set()
        _scheduler_thread.join()

    _stop_event = threading.Event()
    _scheduler_thread = threading.Thread(
        target=_run_scheduler, args=(_stop_event, interval_seconds), daemon=True
    )
    _scheduler_thread.start()


def stop_background_scheduler():
    """Stop the background scheduler."""
    if _stop_event is not None:
        _stop_event.set()
    logger.info("Stopping fee reminder scheduler...")


def is_scheduler_running() -> bool:
    """Check if the background scheduler is running."""
    return (_scheduler_thread is not None and _scheduler_thread.is_alive()
            and not _stop_event.is_set())
