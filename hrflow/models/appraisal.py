from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Enum as SQLEnum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
from hrflow.database import Base


class AppraisalStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    COMPLETED = "COMPLETED"


class GoalStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    ACHIEVED = "ACHIEVED"
    NOT_ACHIEVED = "NOT_ACHIEVED"


class Goal(Base):
    """Goal owned by an appraisal; only ever written together with its parent."""
    __tablename__ = "appraisal_goals"

    id = Column(String(36), primary_key=True)
    appraisal_id = Column(String(36), ForeignKey("appraisals.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    target_date = Column(Date, nullable=False)
    status = Column(SQLEnum(GoalStatus), default=GoalStatus.NOT_STARTED, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    appraisal = relationship("Appraisal", back_populates="goals")


class Appraisal(Base):
    __tablename__ = "appraisals"

    id = Column(String(36), primary_key=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    reviewer_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    review_period_start = Column(Date, nullable=False)
    review_period_end = Column(Date, nullable=False)

    self_assessment = Column(Text, nullable=True)
    manager_feedback = Column(Text, nullable=True)
    rating = Column(Integer, nullable=True)

    status = Column(SQLEnum(AppraisalStatus), default=AppraisalStatus.DRAFT, nullable=False, index=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic lock; bumped on every flush of this row
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    goals = relationship(
        "Goal",
        back_populates="appraisal",
        cascade="all, delete-orphan",
        order_by="Goal.position",
    )
    employee = relationship("Employee", foreign_keys=[employee_id])
    reviewer = relationship("Employee", foreign_keys=[reviewer_id])

    __table_args__ = (
        UniqueConstraint("employee_id", "review_period_start", "review_period_end", name="uq_appraisal_employee_period"),
    )
    __mapper_args__ = {"version_id_col": version}
