"""
Test suite for fee helpers

Runs the engine against seeded database rows and checks receipts,
defaulters, reminders and collection targets.
"""

import pytest
from datetime import date
from decimal import Decimal

from models import Student, StudentStatusEnum
from fee_models import FeeReceipt, PaymentStatusEnum, PaymentModeEnum, ConcessionModeEnum
from fee_calculations import FeeCalculationOptions
from fee_helpers import (
    load_student_fee_inputs, build_fee_options, get_student_fee_details, generate_receipt_number,
    preview_payment_allocation, record_fee_payment, get_defaulter_list, get_fee_reminders,
    get_collection_targets
)


class TestLoading:
    """Test conversion of rows into engine inputs"""

    def test_ids_become_strings(self, session, school):
        structures, payments, concessions = load_student_fee_inputs(session, school.tenant_id, school.student_id)
        assert [s.fee_head_id for s in structures] == [str(school.tuition_id), str(school.library_id)]
        assert structures[0].base_amount == 10000.0

    def test_only_verified_receipts_are_payments(self, session, school):
        _, payments, _ = load_student_fee_inputs(session, school.tenant_id, school.student_id)
        assert [p.amount for p in payments] == [3000.0]

    def test_concession_falls_back_to_type_defaults(self, session, school):
        _, _, concessions = load_student_fee_inputs(session, school.tenant_id, school.student_id)
        concession, = concessions
        assert concession.type == ConcessionModeEnum.PERCENTAGE
        assert concession.value == 10.0
        assert concession.applied_fee_heads == [str(school.tuition_id)]


class TestStudentFeeDetails:
    """Test per-student fee details"""

    def test_summary(self, session, school):
        details = get_student_fee_details(
            session, school.tenant_id, school.student_id, build_fee_options(as_of_date=date(2024, 4, 20))
        )
        assert details['student_id'] == school.student_id
        assert details['student']['full_name'] == 'Asha Verma'
        assert details['summary'] == {
            'total_fees': 11000.0,
            'total_paid': 3000.0,
            'total_outstanding': 8000.0,
            'total_late_fees': 0.0,
            'total_concessions': 1000.0,
            'total_discounts': 0.0,
        }

    def test_fee_rows(self, session, school):
        details = get_student_fee_details(
            session, school.tenant_id, school.student_id, FeeCalculationOptions(as_of_date=date(2024, 4, 20))
        )
        tuition, library = details['fees']
        assert tuition['status'] == 'Partially Paid'
        assert tuition['overdue_days'] == 10
        assert tuition['applied_concessions'][0]['concession_type_name'] == 'Sibling Discount'
        assert library['status'] == 'Pending'

    def test_unknown_student(self, session, school):
        with pytest.raises(ValueError, match='Student not found'):
            get_student_fee_details(session, school.tenant_id, 9999)


class TestPayments:
    """Test payment preview and recording"""

    def test_receipt_numbers_count_the_month(self, session, school):
        assert generate_receipt_number(session, school.tenant_id, date(2024, 4, 30)) == 'RCP-202404-00003'
        assert generate_receipt_number(session, school.tenant_id, date(2024, 5, 1)) == 'RCP-202405-00001'

    def test_preview_oldest_first(self, session, school):
        allocations = preview_payment_allocation(
            session, school.tenant_id, school.student_id, 7000, 'oldest_first', as_of_date=date(2024, 4, 20)
        )
        assert allocations == [
            {'fee_head_id': str(school.tuition_id), 'fee_term_id': str(school.term_id),
             'allocated_amount': 6000.0, 'remaining_outstanding': 0.0},
            {'fee_head_id': str(school.library_id), 'fee_term_id': str(school.term_id),
             'allocated_amount': 1000.0, 'remaining_outstanding': 1000.0},
        ]

    def test_preview_does_not_write(self, session, school):
        preview_payment_allocation(session, school.tenant_id, school.student_id, 500)
        assert session.query(FeeReceipt).count() == 2

    def test_record_payment_writes_one_receipt_per_fee(self, session, school):
        receipts = record_fee_payment(
            session, school.tenant_id, school.student_id, 7000, 'UPI',
            payment_date=date.today(), payment_reference='UPI-123'
        )

        assert [float(r.amount_paid) for r in receipts] == [6000.0, 1000.0]
        assert all(r.status == PaymentStatusEnum.VERIFIED for r in receipts)
        prefix = f"RCP-{date.today():%Y%m}-"
        assert [r.receipt_number for r in receipts] == [prefix + '00001', prefix + '00002']

        details = get_student_fee_details(session, school.tenant_id, school.student_id)
        tuition, library = details['fees']
        assert tuition['status'] == 'Paid'
        assert library['outstanding_amount'] == 1000.0

    def test_overpayment_rejected(self, session, school):
        with pytest.raises(ValueError, match='exceeds outstanding balance'):
            record_fee_payment(session, school.tenant_id, school.student_id, 9000, 'Cash')
        assert session.query(FeeReceipt).count() == 2

    def test_unknown_payment_mode_rejected(self, session, school):
        with pytest.raises(ValueError, match='Unknown payment mode'):
            record_fee_payment(session, school.tenant_id, school.student_id, 100, 'Barter')

    def test_zero_payment_rejected(self, session, school):
        with pytest.raises(ValueError):
            record_fee_payment(session, school.tenant_id, school.student_id, 0, 'Cash')


class TestReports:
    """Test defaulters, reminders and collection targets"""

    def test_defaulters_most_overdue_first(self, session, school):
        rows = get_defaulter_list(session, school.tenant_id, as_of_date=date(2024, 6, 1))
        assert [(r['fee_head'], r['days_overdue'], r['outstanding']) for r in rows] == [
            ('Tuition', 52, 6000.0),
            ('Library', 22, 2000.0),
        ]
        assert rows[0]['student_name'] == 'Asha Verma'

    def test_defaulters_minimum_days(self, session, school):
        rows = get_defaulter_list(session, school.tenant_id, as_of_date=date(2024, 6, 1), min_days_overdue=30)
        assert [r['fee_head'] for r in rows] == ['Tuition']

    def test_no_defaulters_before_due(self, session, school):
        assert get_defaulter_list(session, school.tenant_id, as_of_date=date(2024, 4, 1)) == []

    def test_reminders_carry_guardian_contact(self, session, school):
        reminders = get_fee_reminders(session, school.tenant_id, as_of_date=date(2024, 6, 1))
        assert [(r['fee_head_name'], r['reminder_type']) for r in reminders] == [
            ('Tuition', 'final'), ('Library', 'second')
        ]
        assert reminders[0]['guardian_phone'] == '9876543210'
        assert reminders[0]['fee_structure_id'] == str(school.tuition_fee_id)
        assert reminders[0]['message_template'].startswith('FINAL NOTICE: Your fee payment of ₹6000 for Tuition')

    def test_collection_targets(self, session, school):
        targets = get_collection_targets(session, school.tenant_id, as_of_date=date(2024, 4, 20))
        assert targets['month'] == '2024-04'
        assert targets['days_in_month'] == 30
        assert targets['total_expected'] == 9000.0
        assert targets['collected_so_far'] == 3000.0
        assert targets['target_daily'] == 300.0
        assert targets['projected_total'] == 4500.0
        assert targets['collection_rate'] == 0.5
        assert targets['on_track'] is False

    def test_collection_targets_ignore_former_students(self, session, school):
        """Test receipts of a transferred student do not count as collected"""
        former = Student(
            tenant_id=school.tenant_id, admission_number='GF002', first_name='Kabir', last_name='Shah',
            class_name='5', section='A', status=StudentStatusEnum.TRANSFERRED
        )
        session.add(former)
        session.flush()
        session.add(FeeReceipt(
            tenant_id=school.tenant_id, student_id=former.id, fee_head_id=school.tuition_id,
            fee_term_id=school.term_id, receipt_number='RCP-202404-00003', receipt_date=date(2024, 4, 8),
            payment_date=date(2024, 4, 8), amount_paid=Decimal('4000.00'), payment_mode=PaymentModeEnum.CASH,
            status=PaymentStatusEnum.VERIFIED
        ))
        session.commit()

        targets = get_collection_targets(session, school.tenant_id, as_of_date=date(2024, 4, 20))
        assert targets['collected_so_far'] == 3000.0
        assert targets['collection_rate'] == 0.5
