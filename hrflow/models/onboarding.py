from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Enum as SQLEnum, Boolean, ForeignKey, Index, text
from sqlalchemy.orm import relationship
import enum
from hrflow.database import Base


class TaskStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class WorkflowStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class OnboardingTemplate(Base):
    __tablename__ = "onboarding_templates"

    id = Column(String(36), primary_key=True)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    department_id = Column(String, nullable=True, index=True)
    estimated_days = Column(Integer, nullable=False, default=0)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    tasks = relationship(
        "OnboardingTemplateTask",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="OnboardingTemplateTask.order",
    )


class OnboardingTemplateTask(Base):
    __tablename__ = "onboarding_template_tasks"

    id = Column(String(36), primary_key=True)
    template_id = Column(String(36), ForeignKey("onboarding_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    days_until_due = Column(Integer, nullable=False, default=0)
    order = Column(Integer, nullable=False, default=0)
    requires_document = Column(Boolean, default=False, nullable=False)

    template = relationship("OnboardingTemplate", back_populates="tasks")


class OnboardingWorkflow(Base):
    """One template instance assigned to one employee; status and progress are derived from its tasks."""
    __tablename__ = "onboarding_workflows"

    id = Column(String(36), primary_key=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    template_id = Column(String(36), ForeignKey("onboarding_templates.id"), nullable=False, index=True)
    status = Column(SQLEnum(WorkflowStatus), default=WorkflowStatus.NOT_STARTED, nullable=False, index=True)
    progress = Column(Integer, default=0, nullable=False)
    assigned_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    assigned_at = Column(DateTime(timezone=True), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    target_completion_date = Column(Date, nullable=False)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    tasks = relationship(
        "OnboardingTask",
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="OnboardingTask.order",
    )
    template = relationship("OnboardingTemplate")
    employee = relationship("Employee")

    # At most one workflow per employee that is not yet COMPLETED
    __table_args__ = (
        Index(
            "uq_onboarding_workflow_active_employee",
            "employee_id",
            unique=True,
            postgresql_where=text("status != 'COMPLETED'"),
            sqlite_where=text("status != 'COMPLETED'"),
        ),
    )
    __mapper_args__ = {"version_id_col": version}


class OnboardingTask(Base):
    __tablename__ = "onboarding_tasks"

    id = Column(String(36), primary_key=True)
    workflow_id = Column(String(36), ForeignKey("onboarding_workflows.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(SQLEnum(TaskStatus), default=TaskStatus.PENDING, nullable=False)
    document_url = Column(String(500), nullable=True)
    order = Column(Integer, nullable=False, default=0)
    requires_document = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    workflow = relationship("OnboardingWorkflow", back_populates="tasks")
