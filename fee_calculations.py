"""
Fee Calculation Engine
Pure business logic for student fees: late fees, discounts, concessions,
fee status, installments, payment allocation, reminders and collection targets.

Nothing in here touches the database. Callers load fee structures, concessions
and payments (see fee_helpers.py), pass them in, and persist or display what
comes back.
"""

import enum
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from fee_models import (
    FeeStatusEnum, ConcessionModeEnum, ConcessionStatusEnum, DiscountTypeEnum,
    InstallmentStatusEnum, AllocationStrategyEnum, ReminderTypeEnum
)

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]

# Outstanding balances at or below this are treated as settled
PAID_TOLERANCE = 0.01
ON_TRACK_COLLECTION_RATE = 0.9
DEFAULT_INSTALLMENT_INTERVAL_DAYS = 30


class FeeCalculationError(ValueError):
    """Raised when an input violates a precondition of the fee engine"""


# ===== SMALL HELPERS =====

def round_currency(value: float) -> float:
    """Round to 2 decimal places, halves rounded up"""
    return math.floor(value * 100 + 0.5) / 100


def _to_decimal(value) -> Decimal:
    return Decimal(str(value))


def _as_datetime(value: DateLike) -> datetime:
    """Normalise a date or datetime to a naive datetime (dates at midnight)"""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise FeeCalculationError(f"Expected a date, got {value!r}")


def _resolve_as_of(as_of_date: Optional[DateLike]) -> datetime:
    return datetime.now() if as_of_date is None else _as_datetime(as_of_date)


def _require_amount(value, label: str) -> float:
    if value is None:
        raise FeeCalculationError(f"{label} is required")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise FeeCalculationError(f"{label} must be a number, got {value!r}")
    if math.isnan(amount) or amount < 0:
        raise FeeCalculationError(f"{label} must be a non-negative number, got {value!r}")
    return amount


def _optional_float(value) -> Optional[float]:
    return None if value is None else float(value)


def _coerce_enum(enum_cls, value, label: str):
    """Accept an enum member, its value or its name"""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        pass
    if isinstance(value, str) and value.upper() in enum_cls.__members__:
        return enum_cls[value.upper()]
    raise FeeCalculationError(f"Unknown {label}: {value!r}")


def _jsonable(value):
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def calculate_overdue_days(due_date: DateLike, as_of_date: Optional[DateLike] = None) -> int:
    """Whole days elapsed since the due date, never negative"""
    elapsed = _resolve_as_of(as_of_date) - _as_datetime(due_date)
    return max(0, math.floor(elapsed.total_seconds() / 86400))


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


# ===== INPUT RECORDS =====

@dataclass
class FeeStructure(_Serializable):
    """One fee head charged for one fee term"""
    id: str
    fee_head_id: str
    fee_head_name: str
    fee_term_id: str
    fee_term_name: str
    base_amount: float
    due_date: DateLike
    late_fee_days: Optional[int] = None
    late_fee_amount: Optional[float] = None
    late_fee_percentage: Optional[float] = None
    discount_amount: Optional[float] = None
    discount_percentage: Optional[float] = None
    discount_reason: Optional[str] = None
    installment_allowed: bool = False
    installment_count: Optional[int] = None
    installment_min_amount: Optional[float] = None

    def __post_init__(self):
        self.base_amount = _require_amount(self.base_amount, 'base_amount')
        self.late_fee_amount = _optional_float(self.late_fee_amount)
        self.late_fee_percentage = _optional_float(self.late_fee_percentage)
        self.discount_amount = _optional_float(self.discount_amount)
        self.discount_percentage = _optional_float(self.discount_percentage)
        self.installment_min_amount = _optional_float(self.installment_min_amount)
        self.installment_allowed = bool(self.installment_allowed)


@dataclass
class StudentConcession(_Serializable):
    """A concession granted to a student; only APPROVED ones are ever applied"""
    id: str
    concession_type_id: str
    concession_type_name: str
    type: ConcessionModeEnum
    value: float
    status: ConcessionStatusEnum
    valid_from: DateLike
    valid_until: Optional[DateLike] = None
    custom_value: Optional[float] = None
    # Empty means every fee head / fee term
    applied_fee_heads: List[str] = field(default_factory=list)
    applied_fee_terms: List[str] = field(default_factory=list)
    # Fixed amount per fee term, FIXED concessions only
    fee_term_amounts: Dict[str, float] = field(default_factory=dict)
    reason: Optional[str] = None

    def __post_init__(self):
        self.type = _coerce_enum(ConcessionModeEnum, self.type, 'concession type')
        self.status = _coerce_enum(ConcessionStatusEnum, self.status, 'concession status')
        self.value = float(self.value)
        self.custom_value = _optional_float(self.custom_value)
        self.applied_fee_heads = list(self.applied_fee_heads or [])
        self.applied_fee_terms = list(self.applied_fee_terms or [])
        self.fee_term_amounts = {key: float(amount) for key, amount in (self.fee_term_amounts or {}).items()}


@dataclass
class PaymentRecord(_Serializable):
    id: str
    amount: float
    payment_date: DateLike
    payment_mode: str
    fee_head_id: str
    fee_term_id: Optional[str] = None

    def __post_init__(self):
        self.amount = float(self.amount)


@dataclass
class LateFeeConfig:
    grace_period_days: int = 0
    flat_rate: Optional[float] = None  # Per overdue day
    percentage_rate: Optional[float] = None  # Monthly percentage
    max_late_fee: Optional[float] = None
    compound_daily: bool = False


@dataclass
class DiscountConfig:
    type: DiscountTypeEnum
    value: float
    max_discount: Optional[float] = None
    min_fee_after_discount: Optional[float] = None

    def __post_init__(self):
        self.type = _coerce_enum(DiscountTypeEnum, self.type, 'discount type')


@dataclass
class FeeCalculationOptions:
    calculate_late_fees: bool = True
    apply_discounts: bool = True
    apply_concessions: bool = True
    calculate_installments: bool = False
    as_of_date: Optional[DateLike] = None
    grace_period_days: int = 0
    installment_interval_days: int = DEFAULT_INSTALLMENT_INTERVAL_DAYS
    # Off: payments count against every term of their fee head
    scope_payments_to_term: bool = False


@dataclass
class ReminderConfig:
    first_reminder_days: int = 7
    second_reminder_days: int = 15
    final_reminder_days: int = 30


# ===== OUTPUT RECORDS =====

@dataclass
class ConcessionResult(_Serializable):
    concession_amount: float
    applied_concessions: List[StudentConcession]

    @property
    def amount(self) -> float:
        return self.concession_amount


@dataclass
class InstallmentScheduleEntry(_Serializable):
    installment_number: int
    amount: float
    due_date: DateLike
    status: InstallmentStatusEnum


@dataclass
class InstallmentPlan(_Serializable):
    installment_amount: float
    remaining_installments: int
    next_installment_due: Optional[DateLike]
    installment_schedule: List[InstallmentScheduleEntry]


@dataclass
class InstallmentDetails(_Serializable):
    total_installments: int
    paid_installments: int
    next_installment_amount: float
    next_installment_due: Optional[DateLike]
    schedule: List[InstallmentScheduleEntry] = field(default_factory=list)


@dataclass
class CalculatedFee(_Serializable):
    fee_head_id: str
    fee_head_name: str
    fee_term_id: str
    fee_term_name: str
    base_amount: float
    discount_amount: float
    concession_amount: float
    discounted_amount: float
    late_fee_amount: float
    final_amount: float
    paid_amount: float
    outstanding_amount: float
    due_date: DateLike
    overdue_days: int
    status: FeeStatusEnum
    applied_concessions: List[StudentConcession] = field(default_factory=list)
    installment_details: Optional[InstallmentDetails] = None
    fee_structure_id: Optional[str] = None


@dataclass
class PaymentAllocation(_Serializable):
    fee_head_id: str
    allocated_amount: float
    remaining_outstanding: float
    fee_term_id: Optional[str] = None


@dataclass
class FeeReminder(_Serializable):
    fee_head_id: str
    fee_head_name: str
    reminder_type: ReminderTypeEnum
    days_overdue: int
    outstanding_amount: float
    message_template: str
    fee_term_id: Optional[str] = None
    fee_structure_id: Optional[str] = None


@dataclass
class CollectionTargets(_Serializable):
    target_daily: float
    target_remaining: float
    projected_total: float
    collection_rate: float
    on_track: bool


# ===== LATE FEES =====

def calculate_late_fee(base_amount: float, due_date: DateLike,
                       as_of_date: Optional[DateLike] = None,
                       config: Optional[LateFeeConfig] = None) -> float:
    """
    Calculate the late fee accrued on an amount since its due date.

    A flat rate is charged per overdue day. A percentage rate is a monthly
    rate prorated by days, or compounded per day when compound_daily is set.
    Days inside the grace period never accrue.
    """
    config = config or LateFeeConfig()
    grace_days = config.grace_period_days or 0
    overdue_days = calculate_overdue_days(due_date, as_of_date)

    if overdue_days <= grace_days:
        return 0.0

    actual_overdue_days = overdue_days - grace_days
    late_fee = 0.0

    if config.flat_rate:
        late_fee = actual_overdue_days * config.flat_rate
    elif config.percentage_rate:
        rate = config.percentage_rate / 100
        if config.compound_daily:
            late_fee = base_amount * math.pow(1 + rate, actual_overdue_days) - base_amount
        else:
            late_fee = base_amount * rate * (actual_overdue_days / 30)

    if config.max_late_fee and late_fee > config.max_late_fee:
        late_fee = config.max_late_fee

    return round_currency(late_fee)


# ===== DISCOUNTS =====

def calculate_discount(base_amount: float, config: Optional[DiscountConfig] = None) -> float:
    """Calculate discount amount, honouring the cap and the minimum fee after discount"""
    if config is None:
        return 0.0

    if config.type == DiscountTypeEnum.PERCENTAGE:
        discount = base_amount * (config.value / 100)
    else:
        discount = config.value

    if config.max_discount and discount > config.max_discount:
        discount = config.max_discount

    if config.min_fee_after_discount:
        if base_amount - discount < config.min_fee_after_discount:
            discount = base_amount - config.min_fee_after_discount

    discount = max(0.0, min(discount, base_amount))
    return round_currency(discount)


# ===== CONCESSIONS =====

def is_concession_applicable(concession: StudentConcession, fee_head_id, fee_term_id,
                             as_of_date: Optional[DateLike] = None) -> bool:
    """Approved, inside its validity window and scoped to this head and term"""
    if concession.status != ConcessionStatusEnum.APPROVED:
        return False

    as_of = _resolve_as_of(as_of_date)
    if as_of < _as_datetime(concession.valid_from):
        return False

    if concession.valid_until is not None:
        valid_until = _as_datetime(concession.valid_until)
        if not isinstance(concession.valid_until, datetime):
            # A plain date covers the whole day
            if as_of >= valid_until + timedelta(days=1):
                return False
        elif as_of > valid_until:
            return False

    if concession.applied_fee_heads and fee_head_id not in concession.applied_fee_heads:
        return False
    if concession.applied_fee_terms and fee_term_id not in concession.applied_fee_terms:
        return False

    return True


def _concession_value(concession: StudentConcession, fee_term_id) -> float:
    if concession.custom_value is not None:
        return concession.custom_value
    if concession.type == ConcessionModeEnum.FIXED and fee_term_id in concession.fee_term_amounts:
        return concession.fee_term_amounts[fee_term_id]
    return concession.value


def calculate_concessions(base_amount: float, fee_head_id, fee_term_id,
                          concessions: List[StudentConcession],
                          as_of_date: Optional[DateLike] = None) -> ConcessionResult:
    """
    Total the student's concessions that apply to one fee head and term.

    Args:
        base_amount: Fee amount before any reduction
        fee_head_id: Fee head being charged
        fee_term_id: Fee term being charged
        concessions: All of the student's concessions, in any status
        as_of_date: Date the validity window is checked against (default now)

    Returns:
        ConcessionResult with the total, capped at base_amount, and the
        concessions that passed the filter
    """
    as_of = _resolve_as_of(as_of_date)
    applicable = [
        concession for concession in concessions or []
        if is_concession_applicable(concession, fee_head_id, fee_term_id, as_of)
    ]

    total = 0.0
    for concession in applicable:
        value = _concession_value(concession, fee_term_id)
        if concession.type == ConcessionModeEnum.PERCENTAGE:
            total += base_amount * (value / 100)
        else:
            total += value

    total = min(max(total, 0.0), base_amount)
    return ConcessionResult(concession_amount=round_currency(total), applied_concessions=applicable)


def calculate_concession_amount(base_amount: float, fee_head_id, fee_term_id,
                                concessions: List[StudentConcession],
                                as_of_date: Optional[DateLike] = None) -> ConcessionResult:
    """Same as calculate_concessions; read the total from ``.amount``"""
    return calculate_concessions(base_amount, fee_head_id, fee_term_id, concessions, as_of_date)


# ===== STATUS =====

def determine_fee_status(final_amount: float, paid_amount: float, due_date: DateLike,
                         as_of_date: Optional[DateLike] = None) -> FeeStatusEnum:
    """Determine fee status; a partial payment wins over being overdue"""
    outstanding = final_amount - paid_amount

    if outstanding <= PAID_TOLERANCE:
        return FeeStatusEnum.PAID
    if paid_amount > 0:
        return FeeStatusEnum.PARTIALLY_PAID
    if _as_datetime(due_date) < _resolve_as_of(as_of_date):
        return FeeStatusEnum.OVERDUE
    return FeeStatusEnum.PENDING


# ===== INSTALLMENTS =====

def calculate_installments(total_amount: float, installment_count: int, paid_amount: float,
                           start_date: DateLike,
                           interval_days: int = DEFAULT_INSTALLMENT_INTERVAL_DAYS,
                           as_of_date: Optional[DateLike] = None) -> InstallmentPlan:
    """
    Split a total into equal installments and mark which ones are covered.

    The last installment absorbs the rounding remainder so the schedule always
    sums to total_amount. Payments fill installments in order; an installment
    only partly covered stays Pending.
    """
    if installment_count is None or installment_count < 1:
        raise FeeCalculationError(f"installment_count must be at least 1, got {installment_count!r}")
    total_amount = _require_amount(total_amount, 'total_amount')
    as_of = _resolve_as_of(as_of_date)

    installment_amount = round_currency(total_amount / installment_count)
    last_amount = float(_to_decimal(total_amount) - _to_decimal(installment_amount) * (installment_count - 1))

    remaining_paid = _to_decimal(paid_amount or 0)
    remaining_installments = installment_count
    next_installment_due = None
    schedule = []

    for number in range(1, installment_count + 1):
        due_date = start_date + timedelta(days=(number - 1) * interval_days)
        amount = last_amount if number == installment_count else installment_amount

        if remaining_paid >= _to_decimal(amount):
            status = InstallmentStatusEnum.PAID
            remaining_paid -= _to_decimal(amount)
            remaining_installments -= 1
        elif remaining_paid > 0:
            status = InstallmentStatusEnum.PENDING
            remaining_paid = Decimal('0')
        else:
            status = InstallmentStatusEnum.OVERDUE if _as_datetime(due_date) < as_of else InstallmentStatusEnum.PENDING

        if status != InstallmentStatusEnum.PAID and next_installment_due is None:
            next_installment_due = due_date

        schedule.append(InstallmentScheduleEntry(
            installment_number=number,
            amount=amount,
            due_date=due_date,
            status=status
        ))

    return InstallmentPlan(
        installment_amount=installment_amount,
        remaining_installments=remaining_installments,
        next_installment_due=next_installment_due,
        installment_schedule=schedule
    )


# ===== STUDENT FEE AGGREGATION =====

def _payment_applies(payment: PaymentRecord, fee_structure: FeeStructure, scope_to_term: bool) -> bool:
    if payment.fee_head_id != fee_structure.fee_head_id:
        return False
    if scope_to_term and payment.fee_term_id is not None:
        return payment.fee_term_id == fee_structure.fee_term_id
    return True


def _warn_on_shared_fee_heads(fee_structures: List[FeeStructure], payment_records: List[PaymentRecord],
                              options: FeeCalculationOptions):
    if options.scope_payments_to_term or not payment_records:
        return

    terms_by_head = defaultdict(set)
    for fee_structure in fee_structures:
        terms_by_head[fee_structure.fee_head_id].add(fee_structure.fee_term_id)

    paid_heads = {payment.fee_head_id for payment in payment_records}
    for fee_head_id, terms in terms_by_head.items():
        if len(terms) > 1 and fee_head_id in paid_heads:
            logger.warning(
                f"Fee head {fee_head_id} is charged in {len(terms)} terms; "
                f"its payments are counted against every one of them"
            )


def _calculate_fee(fee_structure: FeeStructure, payment_records: List[PaymentRecord],
                   concessions: List[StudentConcession], options: FeeCalculationOptions,
                   as_of: datetime) -> CalculatedFee:
    base_amount = fee_structure.base_amount
    discount_amount = 0.0
    concession_amount = 0.0
    late_fee_amount = 0.0
    applied_concessions = []

    if options.apply_discounts:
        if fee_structure.discount_amount:
            discount_amount = fee_structure.discount_amount
        elif fee_structure.discount_percentage:
            discount_amount = calculate_discount(
                base_amount,
                DiscountConfig(type=DiscountTypeEnum.PERCENTAGE, value=fee_structure.discount_percentage)
            )

    if options.apply_concessions and concessions:
        result = calculate_concessions(
            base_amount, fee_structure.fee_head_id, fee_structure.fee_term_id, concessions, as_of
        )
        concession_amount = result.concession_amount
        applied_concessions = result.applied_concessions

    discounted_amount = max(0.0, round_currency(base_amount - discount_amount - concession_amount))

    # Late fees accrue on what is left after discounts and concessions
    if options.calculate_late_fees and as_of > _as_datetime(fee_structure.due_date):
        late_fee_config = LateFeeConfig(
            grace_period_days=options.grace_period_days,
            flat_rate=fee_structure.late_fee_amount if fee_structure.late_fee_days else None,
            percentage_rate=fee_structure.late_fee_percentage,
        )
        late_fee_amount = calculate_late_fee(discounted_amount, fee_structure.due_date, as_of, late_fee_config)

    final_amount = round_currency(discounted_amount + late_fee_amount)

    paid_amount = math.fsum(
        payment.amount for payment in payment_records
        if _payment_applies(payment, fee_structure, options.scope_payments_to_term)
    )
    outstanding_amount = max(0.0, round_currency(final_amount - paid_amount))

    status = determine_fee_status(final_amount, paid_amount, fee_structure.due_date, as_of)
    overdue_days = calculate_overdue_days(fee_structure.due_date, as_of)

    installment_details = None
    if options.calculate_installments and fee_structure.installment_allowed and fee_structure.installment_count:
        plan = calculate_installments(
            final_amount,
            fee_structure.installment_count,
            paid_amount,
            fee_structure.due_date,
            options.installment_interval_days,
            as_of
        )
        next_entry = next(
            (entry for entry in plan.installment_schedule if entry.status != InstallmentStatusEnum.PAID),
            None
        )
        installment_details = InstallmentDetails(
            total_installments=fee_structure.installment_count,
            paid_installments=fee_structure.installment_count - plan.remaining_installments,
            next_installment_amount=next_entry.amount if next_entry else 0.0,
            next_installment_due=plan.next_installment_due,
            schedule=plan.installment_schedule
        )

    return CalculatedFee(
        fee_head_id=fee_structure.fee_head_id,
        fee_head_name=fee_structure.fee_head_name,
        fee_term_id=fee_structure.fee_term_id,
        fee_term_name=fee_structure.fee_term_name,
        base_amount=base_amount,
        discount_amount=discount_amount,
        concession_amount=concession_amount,
        discounted_amount=discounted_amount,
        late_fee_amount=late_fee_amount,
        final_amount=final_amount,
        paid_amount=paid_amount,
        outstanding_amount=outstanding_amount,
        due_date=fee_structure.due_date,
        overdue_days=overdue_days,
        status=status,
        applied_concessions=applied_concessions,
        installment_details=installment_details,
        fee_structure_id=fee_structure.id
    )


def calculate_student_fees(fee_structures: List[FeeStructure],
                           payment_records: Optional[List[PaymentRecord]] = None,
                           options: Optional[FeeCalculationOptions] = None,
                           concessions: Optional[List[StudentConcession]] = None) -> List[CalculatedFee]:
    """
    Calculate the financial state of every fee structure for a student.

    Args:
        fee_structures: The student's fee head x fee term assignments
        payment_records: Historical payments, attributed by fee head
        options: Which adjustments to apply and the as-of date (default now)
        concessions: The student's concessions

    Returns:
        One CalculatedFee per fee structure, in input order
    """
    options = options or FeeCalculationOptions()
    payment_records = payment_records or []
    concessions = concessions or []
    as_of = _resolve_as_of(options.as_of_date)

    _warn_on_shared_fee_heads(fee_structures, payment_records, options)

    return [
        _calculate_fee(fee_structure, payment_records, concessions, options, as_of)
        for fee_structure in fee_structures
    ]


# ===== PAYMENT ALLOCATION =====

def _allocation(fee: CalculatedFee, allocated_amount: float) -> PaymentAllocation:
    return PaymentAllocation(
        fee_head_id=fee.fee_head_id,
        allocated_amount=allocated_amount,
        remaining_outstanding=fee.outstanding_amount - allocated_amount,
        fee_term_id=fee.fee_term_id
    )


def allocate_payment(payment_amount: float, outstanding_fees: List[CalculatedFee],
                     strategy=AllocationStrategyEnum.OLDEST_FIRST) -> List[PaymentAllocation]:
    """Distribute one payment across outstanding fees using the given strategy"""
    payment_amount = _require_amount(payment_amount, 'payment_amount')
    strategy = _coerce_enum(AllocationStrategyEnum, strategy or AllocationStrategyEnum.OLDEST_FIRST,
                            'allocation strategy')

    remaining_payment = payment_amount
    allocations = []

    if strategy == AllocationStrategyEnum.EQUAL_DISTRIBUTION:
        total_outstanding = sum(fee.outstanding_amount for fee in outstanding_fees)
        for fee in outstanding_fees:
            if remaining_payment <= 0 or fee.outstanding_amount <= 0:
                continue
            proportional_amount = (fee.outstanding_amount / total_outstanding) * payment_amount
            allocated_amount = min(proportional_amount, fee.outstanding_amount, remaining_payment)
            allocations.append(_allocation(fee, allocated_amount))
            remaining_payment -= allocated_amount
        return allocations

    if strategy == AllocationStrategyEnum.OLDEST_FIRST:
        ordered_fees = sorted(outstanding_fees, key=lambda fee: _as_datetime(fee.due_date))
    else:
        ordered_fees = sorted(outstanding_fees, key=lambda fee: fee.outstanding_amount, reverse=True)

    for fee in ordered_fees:
        if remaining_payment <= 0 or fee.outstanding_amount <= 0:
            continue
        allocated_amount = min(fee.outstanding_amount, remaining_payment)
        allocations.append(_allocation(fee, allocated_amount))
        remaining_payment -= allocated_amount

    return allocations


# ===== REMINDERS =====

REMINDER_MESSAGES = {
    ReminderTypeEnum.FINAL: (
        "FINAL NOTICE: Your fee payment of ₹{amount} for {fee_head} is {days} days overdue. "
        "Please pay immediately to avoid further action."
    ),
    ReminderTypeEnum.SECOND: (
        "SECOND REMINDER: Your fee payment of ₹{amount} for {fee_head} is {days} days overdue. "
        "Please pay at the earliest."
    ),
    ReminderTypeEnum.FIRST: (
        "REMINDER: Your fee payment of ₹{amount} for {fee_head} is {days} days overdue. "
        "Please pay to avoid late fees."
    ),
    ReminderTypeEnum.OVERDUE: (
        "Your fee payment of ₹{amount} for {fee_head} is now overdue. "
        "Please pay to avoid late fees."
    ),
}


def format_amount(amount: float) -> str:
    """1500.0 -> '1500', 1234.5 -> '1234.5'"""
    return ('%.2f' % amount).rstrip('0').rstrip('.')


def _reminder_type(fee: CalculatedFee, config: ReminderConfig) -> Optional[ReminderTypeEnum]:
    if fee.overdue_days >= config.final_reminder_days:
        return ReminderTypeEnum.FINAL
    if fee.overdue_days >= config.second_reminder_days:
        return ReminderTypeEnum.SECOND
    if fee.overdue_days >= config.first_reminder_days:
        return ReminderTypeEnum.FIRST
    if fee.status == FeeStatusEnum.OVERDUE:
        return ReminderTypeEnum.OVERDUE
    return None


def generate_fee_reminders(outstanding_fees: List[CalculatedFee],
                           config: Optional[ReminderConfig] = None) -> List[FeeReminder]:
    """Build reminder notices for fees with an outstanding balance"""
    config = config or ReminderConfig()
    reminders = []

    for fee in outstanding_fees:
        if fee.outstanding_amount <= 0 or fee.status == FeeStatusEnum.PAID:
            continue

        reminder_type = _reminder_type(fee, config)
        if reminder_type is None:
            continue

        message = REMINDER_MESSAGES[reminder_type].format(
            amount=format_amount(fee.outstanding_amount),
            fee_head=fee.fee_head_name,
            days=fee.overdue_days
        )
        reminders.append(FeeReminder(
            fee_head_id=fee.fee_head_id,
            fee_head_name=fee.fee_head_name,
            reminder_type=reminder_type,
            days_overdue=fee.overdue_days,
            outstanding_amount=fee.outstanding_amount,
            message_template=message,
            fee_term_id=fee.fee_term_id,
            fee_structure_id=fee.fee_structure_id
        ))

    return reminders


# ===== COLLECTION TARGETS =====

def calculate_collection_targets(total_expected_collection: float, collected_so_far: float,
                                 days_in_month: int, days_passed: int) -> CollectionTargets:
    """Project this month's collection from the daily average so far"""
    if days_in_month is None or days_in_month < 1:
        raise FeeCalculationError(f"days_in_month must be at least 1, got {days_in_month!r}")

    target_daily = total_expected_collection / days_in_month
    expected_by_now = target_daily * days_passed
    remaining = total_expected_collection - collected_so_far
    days_remaining = days_in_month - days_passed

    collection_rate = collected_so_far / expected_by_now if expected_by_now > 0 else 0.0

    if days_remaining > 0 and days_passed > 0:
        projected_total = collected_so_far + (collected_so_far / days_passed) * days_remaining
    else:
        projected_total = collected_so_far

    return CollectionTargets(
        target_daily=target_daily,
        target_remaining=max(0.0, remaining),
        projected_total=projected_total,
        collection_rate=collection_rate,
        on_track=collection_rate >= ON_TRACK_COLLECTION_RATE
    )
