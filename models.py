"""
Single Database Multi-Tenant Models
This file contains the models shared across tenants (tenants, users) and the
tenant-scoped student model the fee module charges against
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Date, Enum, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime, date
import enum

Base = declarative_base()

# ===== TENANT MODEL =====
class Tenant(Base):
    __tablename__ = 'tenants'

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(100), unique=True, nullable=False)  # URL identifier
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    users = relationship("User", back_populates="tenant", cascade="all, delete-orphan")

    def __repr__(self):
        return f'<Tenant {self.name} ({self.slug})>'

# ===== USER MODEL =====
class User(Base, UserMixin):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id'), nullable=True)  # NULL for portal admin
    username = Column(String(80), nullable=False, unique=True)
    email = Column(String(120), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default='accountant')  # portal_admin, school_admin, accountant
    first_name = Column(String(50))
    last_name = Column(String(50))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant", back_populates="users")

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def get_id(self):
        """Return user ID in format needed by Flask-Login"""
        if self.tenant_id:
            return f"school_{self.tenant_id}_{self.id}"
        return f"admin_{self.id}"

    def __repr__(self):
        return f'<User {self.username} ({self.role})>'

# ===== ENUMS FOR TENANT-SCOPED MODELS =====
class StudentStatusEnum(enum.Enum):
    ACTIVE = "Active"
    TRANSFERRED = "Transferred"
    LEFT = "Left"
    GRADUATED = "Graduated"

# ===== TENANT-SCOPED MODELS =====

class Student(Base):
    __tablename__ = 'students'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'admission_number', name='unique_tenant_admission_number'),
        Index('idx_student_tenant', 'tenant_id'),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id'), nullable=False)

    admission_number = Column(String(20), nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    class_name = Column(String(20))
    section = Column(String(5))

    # Guardian contact, used for fee reminders
    father_name = Column(String(100))
    guardian_phone = Column(String(20))
    guardian_email = Column(String(120))

    admission_date = Column(Date, default=date.today)
    status = Column(Enum(StudentStatusEnum, values_callable=lambda obj: [e.value for e in obj]), default=StudentStatusEnum.ACTIVE)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self):
        return {
            'id': self.id,
            'admission_number': self.admission_number,
            'full_name': self.full_name,
            'class_name': f"{self.class_name}-{self.section}" if self.section else self.class_name,
            'guardian_phone': self.guardian_phone,
            'guardian_email': self.guardian_email,
            'status': self.status.value if self.status else None
        }

    def __repr__(self):
        return f'<Student {self.full_name} ({self.admission_number})>'
