from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import List, Optional

from hrflow.models.onboarding import TaskStatus, WorkflowStatus


# --- Templates ---
class TemplateTaskCreate(BaseModel):
    title: str
    description: str
    days_until_due: int = 0
    order: int = 0
    requires_document: bool = False


class TemplateCreate(BaseModel):
    name: str
    description: str
    department_id: Optional[str] = None
    estimated_days: Optional[int] = None
    tasks: List[TemplateTaskCreate] = Field(default_factory=list)


class TemplateTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    days_until_due: int
    order: int
    requires_document: bool


class TemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    is_active: bool
    department_id: Optional[str] = None
    estimated_days: int
    tasks: List[TemplateTaskResponse] = []
    created_at: datetime


# --- Workflows ---
class TaskOverride(BaseModel):
    """Per-assignment tweak of the template task with the same ``order``."""
    order: int
    due_date: Optional[date] = None
    title: Optional[str] = None
    description: Optional[str] = None


class WorkflowAssign(BaseModel):
    employee_id: int
    template_id: str
    start_date: Optional[date] = None
    target_completion_date: Optional[date] = None
    task_overrides: List[TaskOverride] = Field(default_factory=list)


class TaskComplete(BaseModel):
    document_url: Optional[str] = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    workflow_id: str
    title: str
    description: str
    due_date: date
    status: TaskStatus
    document_url: Optional[str] = None
    order: int
    requires_document: bool
    completed_at: Optional[datetime] = None


class WorkflowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    employee_id: int
    template_id: str
    status: WorkflowStatus
    progress: int
    assigned_by: int
    assigned_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    target_completion_date: date
    version: int
    tasks: List[TaskResponse] = []


class TaskCompletionResponse(BaseModel):
    task: TaskResponse
    workflow: WorkflowResponse


class WorkflowProgressSummary(BaseModel):
    workflow_id: str
    employee_id: int
    employee_name: str
    employee_email: str
    template_name: str
    status: WorkflowStatus
    progress: int
    total_tasks: int
    completed_tasks: int
    pending_tasks: int
    in_progress_tasks: int
    overdue_tasks: int
    target_completion_date: date
    completed_at: Optional[datetime] = None
    days_remaining: int


class ProgressReport(BaseModel):
    workflow_id: str
    progress: int
    status: WorkflowStatus
    completed_tasks: int
    total_tasks: int
    stored_progress: int
    in_sync: bool
