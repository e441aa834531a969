"""
Shared fixtures: a testing app on in-memory SQLite and a seeded school
"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import db_single
from main import create_app
from models import Tenant, Student
from fee_models import (
    FeeHead, FeeTerm, StudentFee, ConcessionType, StudentFeeConcession, FeeReceipt,
    ConcessionModeEnum, ConcessionStatusEnum, PaymentModeEnum, PaymentStatusEnum
)


@pytest.fixture
def app():
    return create_app('testing')


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def session(app):
    session = db_single.get_session()
    yield session
    session.close()


@pytest.fixture
def school(session):
    """
    Greenfield school with one student:
    - Tuition, Term 1: 10000 due 2024-04-10, 10% sibling concession, 3000 paid
    - Library, Term 1: 2000 due 2024-05-10, unpaid (a pending receipt does not count)
    """
    tenant = Tenant(name='Greenfield Public School', slug='greenfield', is_active=True)
    session.add(tenant)
    session.flush()

    student = Student(
        tenant_id=tenant.id,
        admission_number='GF001',
        first_name='Asha',
        last_name='Verma',
        class_name='5',
        section='A',
        guardian_phone='9876543210',
        guardian_email='parent@example.com'
    )
    tuition = FeeHead(tenant_id=tenant.id, name='Tuition', code='TUI')
    library = FeeHead(tenant_id=tenant.id, name='Library', code='LIB')
    term = FeeTerm(tenant_id=tenant.id, name='Term 1', start_date=date(2024, 4, 1),
                   end_date=date(2024, 9, 30), due_date=date(2024, 4, 10))
    session.add_all([student, tuition, library, term])
    session.flush()

    tuition_fee = StudentFee(
        tenant_id=tenant.id, student_id=student.id, fee_head_id=tuition.id, fee_term_id=term.id,
        base_amount=Decimal('10000.00'), due_date=date(2024, 4, 10)
    )
    library_fee = StudentFee(
        tenant_id=tenant.id, student_id=student.id, fee_head_id=library.id, fee_term_id=term.id,
        base_amount=Decimal('2000.00'), due_date=date(2024, 5, 10)
    )
    sibling = ConcessionType(
        tenant_id=tenant.id, name='Sibling Discount', concession_mode=ConcessionModeEnum.PERCENTAGE,
        default_value=Decimal('10.00'), applied_fee_heads=[tuition.id], applied_fee_terms=[]
    )
    session.add_all([tuition_fee, library_fee, sibling])
    session.flush()

    session.add_all([
        StudentFeeConcession(
            tenant_id=tenant.id, student_id=student.id, concession_type_id=sibling.id,
            status=ConcessionStatusEnum.APPROVED, valid_from=date(2024, 1, 1)
        ),
        FeeReceipt(
            tenant_id=tenant.id, student_id=student.id, fee_head_id=tuition.id, fee_term_id=term.id,
            receipt_number='RCP-202404-00001', receipt_date=date(2024, 4, 5), payment_date=date(2024, 4, 5),
            amount_paid=Decimal('3000.00'), payment_mode=PaymentModeEnum.CASH, status=PaymentStatusEnum.VERIFIED
        ),
        FeeReceipt(
            tenant_id=tenant.id, student_id=student.id, fee_head_id=library.id, fee_term_id=term.id,
            receipt_number='RCP-202404-00002', receipt_date=date(2024, 4, 6), payment_date=date(2024, 4, 6),
            amount_paid=Decimal('2000.00'), payment_mode=PaymentModeEnum.CHEQUE, status=PaymentStatusEnum.PENDING
        ),
    ])
    session.commit()

    return SimpleNamespace(
        tenant_id=tenant.id,
        slug=tenant.slug,
        student_id=student.id,
        tuition_id=tuition.id,
        library_id=library.id,
        term_id=term.id,
        tuition_fee_id=tuition_fee.id,
        library_fee_id=library_fee.id
    )
