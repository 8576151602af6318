from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date, datetime
from typing import List, Optional

from hrflow.models.appraisal import AppraisalStatus, GoalStatus


# --- Goals ---
class GoalCreate(BaseModel):
    title: str
    description: str
    target_date: date
    status: GoalStatus = GoalStatus.NOT_STARTED
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: GoalStatus) -> GoalStatus:
        """New goals cannot start out already decided"""
        if v not in (GoalStatus.NOT_STARTED, GoalStatus.IN_PROGRESS):
            raise ValueError("New goals must start as NOT_STARTED or IN_PROGRESS")
        return v


class GoalUpdate(BaseModel):
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    target_date: Optional[date] = None
    status: Optional[GoalStatus] = None
    notes: Optional[str] = None


class GoalStatusUpdate(BaseModel):
    """Status-only change bundled with an assessment or review."""
    id: str
    status: Optional[GoalStatus] = None
    notes: Optional[str] = None


class GoalChanges(BaseModel):
    add: List[GoalCreate] = Field(default_factory=list)
    update: List[GoalUpdate] = Field(default_factory=list)
    remove: List[str] = Field(default_factory=list)


class GoalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    target_date: date
    status: GoalStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# --- Appraisal commands ---
class AppraisalCreate(BaseModel):
    employee_id: int
    reviewer_id: int
    review_period_start: date
    review_period_end: date
    goals: List[GoalCreate] = Field(default_factory=list)


class SelfAssessmentSubmit(BaseModel):
    self_assessment: str
    goals: List[GoalStatusUpdate] = Field(default_factory=list)


class ManagerReviewSubmit(BaseModel):
    manager_feedback: str
    rating: int
    goals: List[GoalStatusUpdate] = Field(default_factory=list)


# --- Appraisal views ---
class AppraisalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    employee_id: int
    reviewer_id: int
    review_period_start: date
    review_period_end: date
    self_assessment: Optional[str] = None
    manager_feedback: Optional[str] = None
    rating: Optional[int] = None
    status: AppraisalStatus
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    goal_progress: int = 0
    version: int
    goals: List[GoalResponse] = []
    created_at: datetime
    updated_at: datetime


class AppraisalSummary(BaseModel):
    id: str
    employee_id: int
    employee_name: str
    reviewer_id: int
    reviewer_name: str
    review_period_start: date
    review_period_end: date
    status: AppraisalStatus
    rating: Optional[int] = None
    goal_count: int
    achieved_goal_count: int
    goal_progress: int
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class AppraisalPage(BaseModel):
    items: List[AppraisalSummary]
    total: int
    page: int
    limit: int
