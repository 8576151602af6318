from pydantic import BaseModel, ConfigDict
from datetime import date, datetime
from typing import Optional

from hrflow.models.leave import LeaveStatus, LeaveType


class LeaveRequestCreate(BaseModel):
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str


class LeaveRejection(BaseModel):
    rejection_reason: str


class LeaveRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    employee_id: int
    leave_type: LeaveType
    start_date: date
    end_date: date
    days_count: int
    reason: str
    status: LeaveStatus
    decided_by: Optional[int] = None
    decided_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime


class LeaveBalanceResponse(BaseModel):
    employee_id: int
    year: int
    annual_leave_total: int
    annual_leave_used: int
    annual_leave_remaining: int
    sick_leave_total: int
    sick_leave_used: int
    sick_leave_remaining: int
