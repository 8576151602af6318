from sqlalchemy import Column, Integer, String, Date, DateTime, Enum as SQLEnum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hrflow.database import Base
import enum


class LeaveType(str, enum.Enum):
    ANNUAL = "annual"
    SICK = "sick"
    UNPAID = "unpaid"
    OTHER = "other"


class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(String(36), primary_key=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type = Column(SQLEnum(LeaveType), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days_count = Column(Integer, nullable=False)
    reason = Column(String(500), nullable=False)
    status = Column(SQLEnum(LeaveStatus), default=LeaveStatus.PENDING, nullable=False, index=True)
    decided_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(String(500), nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    employee = relationship("Employee", foreign_keys=[employee_id])

    __mapper_args__ = {"version_id_col": version}


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (UniqueConstraint("employee_id", "year", name="uq_leave_balance_employee_year"),)

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False, index=True)
    annual_leave_total = Column(Integer, default=0, nullable=False)
    annual_leave_used = Column(Integer, default=0, nullable=False)
    sick_leave_total = Column(Integer, default=0, nullable=False)
    sick_leave_used = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def remaining(self, leave_type: LeaveType) -> int:
        if leave_type == LeaveType.ANNUAL:
            return max(0, self.annual_leave_total - self.annual_leave_used)
        if leave_type == LeaveType.SICK:
            return max(0, self.sick_leave_total - self.sick_leave_used)
        return 0
