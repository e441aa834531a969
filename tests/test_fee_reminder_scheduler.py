"""
Test suite for the fee reminder scheduler
"""

import pytest
from datetime import date, timedelta

import fee_reminder_scheduler
from fee_reminder_scheduler import (
    process_fee_reminders, process_all_tenants, MAX_FAILED_ATTEMPTS,
    start_background_scheduler, stop_background_scheduler, is_scheduler_running
)
from fee_models import FeeReminderLog, ReminderTypeEnum
from models import Student


@pytest.fixture
def outbox(monkeypatch):
    """Capture WhatsApp sends; set outbox.fail to make them fail"""
    class Outbox(list):
        fail = False

    box = Outbox()

    def fake_send(to_phone, message, settings=None):
        box.append((to_phone, message))
        if box.fail:
            return {'success': False, 'message_id': None, 'error': 'Provider down'}
        return {'success': True, 'message_id': f'msg-{len(box)}', 'error': None}

    monkeypatch.setattr(fee_reminder_scheduler, 'is_whatsapp_configured', lambda settings=None: True)
    monkeypatch.setattr(fee_reminder_scheduler, 'send_whatsapp_message', fake_send)
    return box


class TestProcessFeeReminders:
    """Test sending and logging reminders for one school"""

    def test_sends_and_logs_each_reminder(self, session, school, outbox):
        sent, skipped, errors = process_fee_reminders(school.tenant_id, as_of_date=date(2024, 6, 1))

        assert (sent, skipped, errors) == (2, 0, [])
        assert [phone for phone, _ in outbox] == ['9876543210', '9876543210']
        assert outbox[0][1].startswith('FINAL NOTICE')

        logs = session.query(FeeReminderLog).order_by(FeeReminderLog.id).all()
        assert [(log.student_fee_id, log.reminder_type, log.status) for log in logs] == [
            (school.tuition_fee_id, ReminderTypeEnum.FINAL, 'sent'),
            (school.library_fee_id, ReminderTypeEnum.SECOND, 'sent'),
        ]
        assert logs[0].provider_message_id == 'msg-1'

    def test_same_tier_is_not_sent_twice(self, school, outbox):
        process_fee_reminders(school.tenant_id, as_of_date=date(2024, 6, 1))
        sent, skipped, _ = process_fee_reminders(school.tenant_id, as_of_date=date(2024, 6, 2))
        assert (sent, skipped) == (0, 2)
        assert len(outbox) == 2

    def test_next_tier_is_sent(self, school, outbox):
        """Test the library fee moves from second to final reminder"""
        process_fee_reminders(school.tenant_id, as_of_date=date(2024, 6, 1))
        sent, skipped, _ = process_fee_reminders(school.tenant_id, as_of_date=date(2024, 6, 15))
        assert (sent, skipped) == (1, 1)

    def test_failures_are_logged_and_retried(self, session, school, outbox):
        outbox.fail = True
        sent, _, errors = process_fee_reminders(school.tenant_id, as_of_date=date(2024, 6, 1))
        assert sent == 0
        assert errors == ['Asha Verma (Tuition): Provider down', 'Asha Verma (Library): Provider down']
        assert {log.status for log in session.query(FeeReminderLog).all()} == {'failed'}

        outbox.fail = False
        sent, skipped, _ = process_fee_reminders(school.tenant_id, as_of_date=date(2024, 6, 1))
        assert (sent, skipped) == (2, 0)

    def test_failed_attempts_are_capped(self, session, school, outbox):
        """Test daily runs against a failing provider stop after the retry limit"""
        outbox.fail = True
        for day in range(6):
            process_fee_reminders(school.tenant_id, as_of_date=date(2024, 6, 1) + timedelta(days=day))

        assert session.query(FeeReminderLog).count() == 2 * MAX_FAILED_ATTEMPTS
        assert len(outbox) == 2 * MAX_FAILED_ATTEMPTS

        sent, skipped, errors = process_fee_reminders(school.tenant_id, as_of_date=date(2024, 6, 8))
        assert (sent, skipped, errors) == (0, 2, [])

    def test_not_configured_writes_nothing(self, session, school, outbox, monkeypatch):
        monkeypatch.setattr(fee_reminder_scheduler, 'is_whatsapp_configured', lambda settings=None: False)

        for _ in range(3):
            result = process_fee_reminders(school.tenant_id, as_of_date=date(2024, 6, 1))
            assert result == (0, 0, ['WhatsApp not configured'])

        assert session.query(FeeReminderLog).count() == 0
        assert outbox == []

    def test_missing_guardian_phone(self, session, school, outbox):
        student = session.get(Student, school.student_id)
        student.guardian_phone = None
        session.commit()

        for _ in range(3):
            sent, _, errors = process_fee_reminders(school.tenant_id, as_of_date=date(2024, 6, 1))
            assert sent == 0
            assert errors == [
                'Asha Verma (Tuition): No guardian phone number',
                'Asha Verma (Library): No guardian phone number',
            ]

        assert session.query(FeeReminderLog).count() == 0
        assert outbox == []

    def test_all_tenants(self, school, outbox):
        sent, errors = process_all_tenants(as_of_date=date(2024, 6, 1))
        assert (sent, errors) == (2, [])


class TestBackgroundScheduler:
    """Test starting and stopping the background thread"""

    @pytest.fixture
    def runs(self, monkeypatch):
        calls = []

        def fake_process():
            calls.append(1)
            return 0, []

        monkeypatch.setattr(fee_reminder_scheduler, 'process_all_tenants', fake_process)
        yield calls
        stop_background_scheduler()
        if fee_reminder_scheduler._scheduler_thread is not None:
            fee_reminder_scheduler._scheduler_thread.join(timeout=3)

    def test_start_and_stop(self, runs):
        start_background_scheduler(interval_seconds=60)
        try:
            assert is_scheduler_running()
        finally:
            stop_background_scheduler()

        assert not is_scheduler_running()
        fee_reminder_scheduler._scheduler_thread.join(timeout=3)
        assert not fee_reminder_scheduler._scheduler_thread.is_alive()

    def test_restart_leaves_one_loop(self, runs):
        start_background_scheduler(interval_seconds=60)
        first = fee_reminder_scheduler._scheduler_thread

        stop_background_scheduler()
        start_background_scheduler(interval_seconds=60)
        second = fee_reminder_scheduler._scheduler_thread

        assert second is not first
        assert not first.is_alive()
        assert second.is_alive()
        assert is_scheduler_running()

    def test_second_start_is_ignored(self, runs):
        start_background_scheduler(interval_seconds=60)
        first = fee_reminder_scheduler._scheduler_thread
        start_background_scheduler(interval_seconds=60)
        assert fee_reminder_scheduler._scheduler_thread is first
