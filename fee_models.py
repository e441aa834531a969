"""
Fee Management Models for Multi-Tenant School Management System
This file contains the fee enums shared with the calculation engine and the
models for fee heads, fee terms, student fee assignments, concessions, receipts
and reminder logs
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Date, Enum, BigInteger, Index, UniqueConstraint, DECIMAL, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, date
from models import Base
import enum


# SQLite only autoincrements INTEGER primary keys
BigIntId = BigInteger().with_variant(Integer, 'sqlite')


# ===== ENUMS =====

class FeeStatusEnum(enum.Enum):
    PENDING = "Pending"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"
    OVERDUE = "Overdue"


class ConcessionModeEnum(enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class ConcessionStatusEnum(enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"
    EXPIRED = "EXPIRED"


class DiscountTypeEnum(enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class InstallmentStatusEnum(enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"
    OVERDUE = "Overdue"


class AllocationStrategyEnum(enum.Enum):
    OLDEST_FIRST = "oldest_first"
    HIGHEST_AMOUNT_FIRST = "highest_amount_first"
    EQUAL_DISTRIBUTION = "equal_distribution"


class ReminderTypeEnum(enum.Enum):
    FIRST = "first"
    SECOND = "second"
    FINAL = "final"
    OVERDUE = "overdue"


class PaymentModeEnum(enum.Enum):
    CASH = "Cash"
    CHEQUE = "Cheque"
    UPI = "UPI"
    BANK_TRANSFER = "Bank Transfer"
    DEMAND_DRAFT = "Demand Draft"
    DEBIT_CARD = "Debit Card"
    CREDIT_CARD = "Credit Card"
    ONLINE = "Online"
    OTHER = "Other"


class PaymentStatusEnum(enum.Enum):
    PENDING = "Pending"
    VERIFIED = "Verified"
    CANCELLED = "Cancelled"
    REVERSED = "Reversed"


def _enum_values(obj):
    return [e.value for e in obj]


# ===== FEE HEAD MODEL =====

class FeeHead(Base):
    """Fee heads like Tuition, Library, Lab, Sports, Transport, etc."""
    __tablename__ = 'fee_heads'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='unique_tenant_fee_head_code'),
        Index('idx_fee_head_tenant', 'tenant_id'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    display_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant")

    def __repr__(self):
        return f"<FeeHead {self.name} ({self.code})>"


# ===== FEE TERM MODEL =====

class FeeTerm(Base):
    """Billing periods like Term 1, Quarter 2 or Annual"""
    __tablename__ = 'fee_terms'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='unique_tenant_fee_term_name'),
        Index('idx_fee_term_tenant', 'tenant_id'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant")

    def __repr__(self):
        return f"<FeeTerm {self.name}>"


# ===== STUDENT FEE MODEL =====

class StudentFee(Base):
    """A fee head charged to a student for one fee term"""
    __tablename__ = 'student_fees'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'student_id', 'fee_head_id', 'fee_term_id', name='unique_student_head_term'),
        Index('idx_student_fee_tenant', 'tenant_id'),
        Index('idx_student_fee_student', 'student_id'),
        Index('idx_student_fee_due', 'due_date'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    fee_head_id = Column(BigIntId, ForeignKey('fee_heads.id', ondelete='CASCADE'), nullable=False)
    fee_term_id = Column(BigIntId, ForeignKey('fee_terms.id', ondelete='CASCADE'), nullable=False)

    base_amount = Column(DECIMAL(10, 2), nullable=False, default=0.00)
    due_date = Column(Date, nullable=False)

    # Late fee rules
    late_fee_days = Column(Integer, nullable=True)
    late_fee_amount = Column(DECIMAL(10, 2), nullable=True)  # Per day once late_fee_days is set
    late_fee_percentage = Column(DECIMAL(5, 2), nullable=True)  # Monthly percentage

    # Discount
    discount_amount = Column(DECIMAL(10, 2), nullable=True)
    discount_percentage = Column(DECIMAL(5, 2), nullable=True)
    discount_reason = Column(Text, nullable=True)

    # Installments
    installment_allowed = Column(Boolean, default=False)
    installment_count = Column(Integer, nullable=True)
    installment_min_amount = Column(DECIMAL(10, 2), nullable=True)

    remarks = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant")
    student = relationship("Student", backref="fees")
    fee_head = relationship("FeeHead")
    fee_term = relationship("FeeTerm")

    def __repr__(self):
        return f"<StudentFee student_id={self.student_id} head={self.fee_head_id} term={self.fee_term_id}>"


# ===== CONCESSION TYPE MODEL =====

class ConcessionType(Base):
    """Concession definitions like Sibling Discount, Staff Child or Merit Scholarship"""
    __tablename__ = 'concession_types'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='unique_tenant_concession_type'),
        Index('idx_concession_type_tenant', 'tenant_id'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    concession_mode = Column(Enum(ConcessionModeEnum, values_callable=_enum_values), nullable=False)
    default_value = Column(DECIMAL(10, 2), nullable=False)

    # Empty list means the concession applies to every head/term
    applied_fee_heads = Column(JSON, default=list)
    applied_fee_terms = Column(JSON, default=list)
    # {"<fee_term_id>": amount} for FIXED concessions
    fee_term_amounts = Column(JSON, default=dict)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant")
    student_concessions = relationship("StudentFeeConcession", back_populates="concession_type", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ConcessionType {self.name} {self.concession_mode.value}>"


# ===== STUDENT FEE CONCESSION MODEL =====

class StudentFeeConcession(Base):
    """Concession granted to a student, subject to approval"""
    __tablename__ = 'student_fee_concessions'
    __table_args__ = (
        Index('idx_concession_tenant', 'tenant_id'),
        Index('idx_concession_student', 'student_id'),
        Index('idx_concession_status', 'status'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    concession_type_id = Column(BigIntId, ForeignKey('concession_types.id', ondelete='CASCADE'), nullable=False)
    custom_value = Column(DECIMAL(10, 2), nullable=True)  # Overrides the type's default value
    status = Column(Enum(ConcessionStatusEnum, values_callable=_enum_values), default=ConcessionStatusEnum.PENDING)
    reason = Column(Text, nullable=True)

    # NULL falls back to the concession type's lists
    applied_fee_heads = Column(JSON, nullable=True)
    applied_fee_terms = Column(JSON, nullable=True)

    # Approval details
    approved_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    # Validity (inclusive)
    valid_from = Column(Date, nullable=False, default=date.today)
    valid_until = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant")
    student = relationship("Student", backref="concessions")
    concession_type = relationship("ConcessionType", back_populates="student_concessions")
    approver = relationship("User")

    def __repr__(self):
        return f"<StudentFeeConcession student_id={self.student_id} status={self.status.value}>"


# ===== FEE RECEIPT MODEL =====

class FeeReceipt(Base):
    """Payment receipts against a student's fee head"""
    __tablename__ = 'fee_receipts'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'receipt_number', name='unique_tenant_receipt_number'),
        Index('idx_receipt_tenant', 'tenant_id'),
        Index('idx_receipt_student', 'student_id'),
        Index('idx_receipt_date', 'payment_date'),
        Index('idx_receipt_status', 'status'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    fee_head_id = Column(BigIntId, ForeignKey('fee_heads.id', ondelete='CASCADE'), nullable=False)
    fee_term_id = Column(BigIntId, ForeignKey('fee_terms.id', ondelete='SET NULL'), nullable=True)

    receipt_number = Column(String(50), nullable=False)
    receipt_date = Column(Date, nullable=False, default=date.today)
    payment_date = Column(Date, nullable=False, default=date.today)

    amount_paid = Column(DECIMAL(10, 2), nullable=False)
    payment_mode = Column(Enum(PaymentModeEnum, values_callable=_enum_values), nullable=False)
    payment_reference = Column(String(100), nullable=True)  # Cheque/Transaction number

    status = Column(Enum(PaymentStatusEnum, values_callable=_enum_values), default=PaymentStatusEnum.PENDING)
    remarks = Column(Text, nullable=True)

    generated_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    verified_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant")
    student = relationship("Student", backref="fee_receipts")
    fee_head = relationship("FeeHead")
    fee_term = relationship("FeeTerm")
    generator = relationship("User", foreign_keys=[generated_by])

    def __repr__(self):
        return f"<FeeReceipt {self.receipt_number} amount={self.amount_paid}>"


# ===== FEE REMINDER LOG MODEL =====

class FeeReminderLog(Base):
    """One row per reminder sent (or attempted) for a student fee"""
    __tablename__ = 'fee_reminder_logs'
    __table_args__ = (
        Index('idx_reminder_tenant', 'tenant_id'),
        Index('idx_reminder_student_fee', 'student_fee_id'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    student_fee_id = Column(BigIntId, ForeignKey('student_fees.id', ondelete='CASCADE'), nullable=False)
    reminder_type = Column(Enum(ReminderTypeEnum, values_callable=_enum_values), nullable=False)
    days_overdue = Column(Integer, default=0)
    recipient_phone = Column(String(20), nullable=True)
    message_content = Column(Text, nullable=True)
    status = Column(String(20), default='pending')  # pending, sent, failed
    provider_message_id = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    tenant = relationship("Tenant")
    student_fee = relationship("StudentFee")

    def __repr__(self):
        return f"<FeeReminderLog fee={self.student_fee_id} type={self.reminder_type.value} status={self.status}>"
