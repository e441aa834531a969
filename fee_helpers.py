"""
Fee Management Helper Functions
Loads fee data for the calculation engine, runs it, and turns the results into
receipts, defaulter lists, reminders and collection targets
"""

import logging
from collections import defaultdict
from datetime import datetime, date
from decimal import Decimal
from dateutil.relativedelta import relativedelta
from sqlalchemy import func, extract
from sqlalchemy.orm import Session, joinedload
from config import Config
from fee_models import (
    StudentFee, StudentFeeConcession, FeeReceipt,
    FeeStatusEnum, PaymentModeEnum, PaymentStatusEnum
)
from fee_calculations import (
    FeeStructure, StudentConcession, PaymentRecord, FeeCalculationOptions, ReminderConfig,
    calculate_student_fees, allocate_payment, generate_fee_reminders,
    calculate_collection_targets, round_currency, PAID_TOLERANCE
)
from models import Student, StudentStatusEnum

logger = logging.getLogger(__name__)


# ===== ENGINE INPUT CONVERSION =====

def _id(value):
    return None if value is None else str(value)


def _float(value):
    return None if value is None else float(value)


def to_fee_structure(student_fee: StudentFee) -> FeeStructure:
    """Convert a StudentFee row to the engine's FeeStructure"""
    return FeeStructure(
        id=_id(student_fee.id),
        fee_head_id=_id(student_fee.fee_head_id),
        fee_head_name=student_fee.fee_head.name if student_fee.fee_head else '',
        fee_term_id=_id(student_fee.fee_term_id),
        fee_term_name=student_fee.fee_term.name if student_fee.fee_term else '',
        base_amount=float(student_fee.base_amount or 0),
        due_date=student_fee.due_date,
        late_fee_days=student_fee.late_fee_days,
        late_fee_amount=_float(student_fee.late_fee_amount),
        late_fee_percentage=_float(student_fee.late_fee_percentage),
        discount_amount=_float(student_fee.discount_amount),
        discount_percentage=_float(student_fee.discount_percentage),
        discount_reason=student_fee.discount_reason,
        installment_allowed=bool(student_fee.installment_allowed),
        installment_count=student_fee.installment_count,
        installment_min_amount=_float(student_fee.installment_min_amount)
    )


def to_student_concession(row: StudentFeeConcession) -> StudentConcession:
    """Convert a StudentFeeConcession row, falling back to its type's defaults"""
    concession_type = row.concession_type
    fee_heads = row.applied_fee_heads if row.applied_fee_heads is not None else concession_type.applied_fee_heads
    fee_terms = row.applied_fee_terms if row.applied_fee_terms is not None else concession_type.applied_fee_terms

    return StudentConcession(
        id=_id(row.id),
        concession_type_id=_id(row.concession_type_id),
        concession_type_name=concession_type.name,
        type=concession_type.concession_mode,
        value=float(concession_type.default_value or 0),
        status=row.status,
        valid_from=row.valid_from,
        valid_until=row.valid_until,
        custom_value=_float(row.custom_value),
        applied_fee_heads=[_id(head) for head in fee_heads or []],
        applied_fee_terms=[_id(term) for term in fee_terms or []],
        fee_term_amounts={_id(term): float(amount) for term, amount in (concession_type.fee_term_amounts or {}).items()},
        reason=row.reason
    )


def to_payment_record(receipt: FeeReceipt) -> PaymentRecord:
    """Convert a verified FeeReceipt to the engine's PaymentRecord"""
    return PaymentRecord(
        id=_id(receipt.id),
        amount=float(receipt.amount_paid),
        payment_date=receipt.payment_date,
        payment_mode=receipt.payment_mode.value if receipt.payment_mode else None,
        fee_head_id=_id(receipt.fee_head_id),
        fee_term_id=_id(receipt.fee_term_id)
    )


def build_fee_options(as_of_date=None, **overrides) -> FeeCalculationOptions:
    """Engine options seeded from configuration"""
    settings = {
        'as_of_date': as_of_date,
        'grace_period_days': Config.FEE_GRACE_PERIOD_DAYS,
        'installment_interval_days': Config.FEE_INSTALLMENT_INTERVAL_DAYS,
        'scope_payments_to_term': Config.FEE_SCOPE_PAYMENTS_TO_TERM,
    }
    settings.update(overrides)
    return FeeCalculationOptions(**settings)


def build_reminder_config() -> ReminderConfig:
    return ReminderConfig(**Config().reminder_thresholds())


# ===== LOADING =====

def _get_student(session: Session, tenant_id: int, student_id: int) -> Student:
    student = session.query(Student).filter_by(id=student_id, tenant_id=tenant_id).first()
    if not student:
        raise ValueError("Student not found")
    return student


def _student_fee_query(session: Session, tenant_id: int):
    return session.query(StudentFee).options(
        joinedload(StudentFee.fee_head), joinedload(StudentFee.fee_term)
    ).filter(StudentFee.tenant_id == tenant_id)


def _concession_query(session: Session, tenant_id: int):
    return session.query(StudentFeeConcession).options(
        joinedload(StudentFeeConcession.concession_type)
    ).filter(StudentFeeConcession.tenant_id == tenant_id)


def _verified_receipt_query(session: Session, tenant_id: int):
    return session.query(FeeReceipt).filter(
        FeeReceipt.tenant_id == tenant_id,
        FeeReceipt.status == PaymentStatusEnum.VERIFIED
    )


def load_student_fee_inputs(session: Session, tenant_id: int, student_id: int) -> tuple:
    """Fee structures, verified payments and concessions for one student"""
    student_fees = _student_fee_query(session, tenant_id).filter(
        StudentFee.student_id == student_id
    ).order_by(StudentFee.due_date, StudentFee.id).all()

    receipts = _verified_receipt_query(session, tenant_id).filter(
        FeeReceipt.student_id == student_id
    ).all()

    concessions = _concession_query(session, tenant_id).filter(
        StudentFeeConcession.student_id == student_id
    ).all()

    return (
        [to_fee_structure(sf) for sf in student_fees],
        [to_payment_record(r) for r in receipts],
        [to_student_concession(c) for c in concessions]
    )


def calculate_fees_for_student(session: Session, tenant_id: int, student_id: int,
                               options: FeeCalculationOptions = None) -> list:
    """Run the engine for a single student"""
    structures, payments, concessions = load_student_fee_inputs(session, tenant_id, student_id)
    return calculate_student_fees(structures, payments, options or build_fee_options(), concessions)


def calculate_fees_for_tenant(session: Session, tenant_id: int, options: FeeCalculationOptions = None) -> list:
    """
    Run the engine for every active student of a tenant

    Returns:
        list of (Student, [CalculatedFee]) tuples for students with fees
    """
    options = options or build_fee_options()

    students = session.query(Student).filter_by(
        tenant_id=tenant_id,
        status=StudentStatusEnum.ACTIVE
    ).order_by(Student.id).all()

    structures = defaultdict(list)
    for sf in _student_fee_query(session, tenant_id).order_by(StudentFee.due_date, StudentFee.id).all():
        structures[sf.student_id].append(to_fee_structure(sf))

    payments = defaultdict(list)
    for receipt in _verified_receipt_query(session, tenant_id).all():
        payments[receipt.student_id].append(to_payment_record(receipt))

    concessions = defaultdict(list)
    for row in _concession_query(session, tenant_id).all():
        concessions[row.student_id].append(to_student_concession(row))

    results = []
    for student in students:
        if not structures[student.id]:
            continue
        fees = calculate_student_fees(
            structures[student.id], payments[student.id], options, concessions[student.id]
        )
        results.append((student, fees))
    return results


# ===== STUDENT-SPECIFIC HELPERS =====

def summarize_fees(fees: list) -> dict:
    """Totals across a student's calculated fees"""
    return {
        'total_fees': round_currency(sum(f.final_amount for f in fees)),
        'total_paid': round_currency(sum(f.paid_amount for f in fees)),
        'total_outstanding': round_currency(sum(f.outstanding_amount for f in fees)),
        'total_late_fees': round_currency(sum(f.late_fee_amount for f in fees)),
        'total_concessions': round_currency(sum(f.concession_amount for f in fees)),
        'total_discounts': round_currency(sum(f.discount_amount for f in fees)),
    }


def get_student_fee_details(session: Session, tenant_id: int, student_id: int,
                            options: FeeCalculationOptions = None) -> dict:
    """Get complete calculated fee details for a student"""
    student = _get_student(session, tenant_id, student_id)
    fees = calculate_fees_for_student(session, tenant_id, student_id, options)

    return {
        'student_id': student.id,
        'student': student.to_dict(),
        'fees': [fee.to_dict() for fee in fees],
        'summary': summarize_fees(fees)
    }


# ===== PAYMENT PROCESSING =====

def generate_receipt_number(session: Session, tenant_id: int, on_date: date = None) -> str:
    """Generate unique receipt number for tenant"""
    on_date = on_date or date.today()
    prefix = f"RCP-{on_date.year}{on_date.month:02d}"

    count = session.query(func.count(FeeReceipt.id)).filter(
        FeeReceipt.tenant_id == tenant_id,
        extract('year', FeeReceipt.receipt_date) == on_date.year,
        extract('month', FeeReceipt.receipt_date) == on_date.month
    ).scalar() or 0

    receipt_number = f"{prefix}-{count + 1:05d}"

    # Ensure uniqueness
    while session.query(FeeReceipt).filter_by(receipt_number=receipt_number, tenant_id=tenant_id).first():
        count += 1
        receipt_number = f"{prefix}-{count + 1:05d}"

    return receipt_number


def _outstanding(fees: list) -> list:
    return [fee for fee in fees if fee.outstanding_amount > 0]


def preview_payment_allocation(session: Session, tenant_id: int, student_id: int, amount: float,
                               strategy: str = None, as_of_date: date = None,
                               options: FeeCalculationOptions = None) -> list:
    """Show how a payment would be split across the student's outstanding fees"""
    _get_student(session, tenant_id, student_id)
    fees = calculate_fees_for_student(
        session, tenant_id, student_id, options or build_fee_options(as_of_date=as_of_date)
    )
    allocations = allocate_payment(amount, _outstanding(fees), strategy or Config.FEE_ALLOCATION_STRATEGY)

    return [{
        'fee_head_id': a.fee_head_id,
        'fee_term_id': a.fee_term_id,
        'allocated_amount': round_currency(a.allocated_amount),
        'remaining_outstanding': round_currency(a.remaining_outstanding)
    } for a in allocations]


def _payment_mode(payment_mode) -> PaymentModeEnum:
    if isinstance(payment_mode, PaymentModeEnum):
        return payment_mode
    try:
        return PaymentModeEnum(payment_mode)
    except ValueError:
        raise ValueError(f"Unknown payment mode: {payment_mode}")


def record_fee_payment(session: Session, tenant_id: int, student_id: int, amount: float,
                       payment_mode, strategy: str = None, payment_date: date = None,
                       payment_reference: str = None, generated_by: int = None,
                       remarks: str = None, options: FeeCalculationOptions = None) -> list:
    """
    Split a payment across outstanding fees and write one receipt per fee

    Returns:
        list of the FeeReceipt rows created
    """
    _get_student(session, tenant_id, student_id)
    if amount is None or amount <= 0:
        raise ValueError("Payment amount must be greater than zero")
    payment_mode = _payment_mode(payment_mode)
    payment_date = payment_date or date.today()

    fees = calculate_fees_for_student(session, tenant_id, student_id, options)
    outstanding_fees = _outstanding(fees)
    if not outstanding_fees:
        raise ValueError("No outstanding fees for student")

    balance = round_currency(sum(f.outstanding_amount for f in outstanding_fees))
    if amount > balance + PAID_TOLERANCE:
        raise ValueError(f"Payment amount ({amount}) exceeds outstanding balance ({balance})")

    allocations = allocate_payment(amount, outstanding_fees, strategy or Config.FEE_ALLOCATION_STRATEGY)

    receipts = []
    try:
        for allocation in allocations:
            allocated = Decimal(str(round_currency(allocation.allocated_amount)))
            if allocated <= 0:
                continue

            receipt = FeeReceipt(
                tenant_id=tenant_id,
                student_id=student_id,
                fee_head_id=int(allocation.fee_head_id),
                fee_term_id=int(allocation.fee_term_id) if allocation.fee_term_id else None,
                receipt_number=generate_receipt_number(session, tenant_id, date.today()),
                receipt_date=date.today(),
                payment_date=payment_date,
                amount_paid=allocated,
                payment_mode=payment_mode,
                payment_reference=payment_reference,
                status=PaymentStatusEnum.VERIFIED,  # Auto-verify manual payments
                generated_by=generated_by,
                verified_at=datetime.utcnow(),
                remarks=remarks
            )
            session.add(receipt)
            session.flush()  # Next receipt number must see this one
            receipts.append(receipt)

        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Recorded payment of {amount} for student {student_id} as {len(receipts)} receipt(s)")
    return receipts


# ===== ANALYTICS AND REPORTING =====

def get_defaulter_list(session: Session, tenant_id: int, as_of_date: date = None,
                       min_days_overdue: int = 0, options: FeeCalculationOptions = None) -> list:
    """Get list of overdue fees with an outstanding balance, most overdue first"""
    options = options or build_fee_options(as_of_date=as_of_date)
    defaulters = []

    for student, fees in calculate_fees_for_tenant(session, tenant_id, options):
        for fee in fees:
            if fee.outstanding_amount <= 0 or fee.overdue_days <= 0:
                continue
            if fee.status not in (FeeStatusEnum.OVERDUE, FeeStatusEnum.PARTIALLY_PAID):
                continue
            if fee.overdue_days < min_days_overdue:
                continue

            defaulters.append({
                'student_id': student.id,
                'student_name': student.full_name,
                'admission_number': student.admission_number,
                'guardian_phone': student.guardian_phone,
                'guardian_email': student.guardian_email,
                'fee_head': fee.fee_head_name,
                'fee_term': fee.fee_term_name,
                'due_date': fee.due_date.strftime('%Y-%m-%d'),
                'final_amount': fee.final_amount,
                'paid_amount': fee.paid_amount,
                'outstanding': fee.outstanding_amount,
                'days_overdue': fee.overdue_days,
                'status': fee.status.value
            })

    defaulters.sort(key=lambda row: row['days_overdue'], reverse=True)
    return defaulters


def get_fee_reminders(session: Session, tenant_id: int, as_of_date: date = None,
                      config: ReminderConfig = None, options: FeeCalculationOptions = None) -> list:
    """Reminder notices for every student with overdue fees"""
    config = config or build_reminder_config()
    options = options or build_fee_options(as_of_date=as_of_date)
    reminders = []

    for student, fees in calculate_fees_for_tenant(session, tenant_id, options):
        for reminder in generate_fee_reminders(fees, config):
            row = reminder.to_dict()
            row.update({
                'student_id': student.id,
                'student_name': student.full_name,
                'admission_number': student.admission_number,
                'guardian_phone': student.guardian_phone,
            })
            reminders.append(row)

    return reminders


def get_collection_targets(session: Session, tenant_id: int, as_of_date: date = None,
                           options: FeeCalculationOptions = None) -> dict:
    """Collection progress for the month containing as_of_date"""
    as_of_date = as_of_date or date.today()
    month_start = as_of_date.replace(day=1)
    month_end = as_of_date + relativedelta(day=31)

    options = options or build_fee_options(as_of_date=as_of_date)

    total_expected = 0.0
    for _, fees in calculate_fees_for_tenant(session, tenant_id, options):
        total_expected += sum(
            fee.final_amount for fee in fees
            if month_start <= fee.due_date <= month_end
        )

    collected = session.query(func.sum(FeeReceipt.amount_paid)).join(
        Student, Student.id == FeeReceipt.student_id
    ).filter(
        FeeReceipt.tenant_id == tenant_id,
        Student.status == StudentStatusEnum.ACTIVE,
        FeeReceipt.status == PaymentStatusEnum.VERIFIED,
        FeeReceipt.payment_date.between(month_start, as_of_date)
    ).scalar()
    collected = float(collected or 0)

    targets = calculate_collection_targets(total_expected, collected, month_end.day, as_of_date.day)

    return {
        'month': as_of_date.strftime('%Y-%m'),
        'total_expected': round_currency(total_expected),
        'collected_so_far': round_currency(collected),
        'days_in_month': month_end.day,
        'days_passed': as_of_date.day,
        'target_daily': round_currency(targets.target_daily),
        'target_remaining': round_currency(targets.target_remaining),
        'projected_total': round_currency(targets.projected_total),
        'collection_rate': round(targets.collection_rate, 4),
        'on_track': targets.on_track
    }
