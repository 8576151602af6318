from typing import Optional

from fastapi import APIRouter, Depends

from hrflow.dependencies import get_leave_service, respond
from hrflow.models.leave import LeaveStatus
from hrflow.routers.auth_deps import get_current_user, require_manager
from hrflow.schemas.leave import LeaveRejection, LeaveRequestCreate
from hrflow.services.authorization import CallerIdentity
from hrflow.services.leave_service import LeaveService

router = APIRouter(prefix="/leave", tags=["Leave"])


@router.post("/requests")
def submit_leave_request(
    payload: LeaveRequestCreate,
    current_user: CallerIdentity = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    return respond(service.submit_leave_request(current_user, payload), success_status=201)


@router.get("/requests/my")
def list_my_leave_requests(
    status: Optional[LeaveStatus] = None,
    current_user: CallerIdentity = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    return respond(service.list_my_leave_requests(current_user, status=status))


@router.get("/requests/team")
def list_team_leave_requests(
    status: Optional[LeaveStatus] = None,
    current_user: CallerIdentity = Depends(require_manager()),
    service: LeaveService = Depends(get_leave_service),
):
    return respond(service.list_team_leave_requests(current_user, status=status))


@router.post("/requests/{request_id}/approve")
def approve_leave_request(
    request_id: str,
    current_user: CallerIdentity = Depends(require_manager()),
    service: LeaveService = Depends(get_leave_service),
):
    return respond(service.approve_leave_request(current_user, request_id))


@router.post("/requests/{request_id}/reject")
def reject_leave_request(
    request_id: str,
    payload: LeaveRejection,
    current_user: CallerIdentity = Depends(require_manager()),
    service: LeaveService = Depends(get_leave_service),
):
    return respond(service.reject_leave_request(current_user, request_id, payload))


@router.get("/balance")
def get_leave_balance(
    employee_id: Optional[int] = None,
    year: Optional[int] = None,
    current_user: CallerIdentity = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    return respond(service.get_leave_balance(current_user, employee_id=employee_id, year=year))
