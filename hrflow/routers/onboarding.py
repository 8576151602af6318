from typing import Optional

from fastapi import APIRouter, Depends

from hrflow.dependencies import get_onboarding_service, respond
from hrflow.routers.auth_deps import get_current_user, require_hr, require_manager
from hrflow.schemas.onboarding import TaskComplete, TemplateCreate, WorkflowAssign
from hrflow.services.authorization import CallerIdentity
from hrflow.services.onboarding_service import OnboardingService

router = APIRouter(prefix="/onboarding", tags=["Onboarding"])


# --- Templates ---
@router.post("/templates")
def create_template(
    payload: TemplateCreate,
    current_user: CallerIdentity = Depends(require_hr()),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return respond(service.create_template(current_user, payload), success_status=201)


@router.get("/templates")
def list_templates(
    department_id: Optional[str] = None,
    current_user: CallerIdentity = Depends(require_manager()),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return respond(service.list_templates(current_user, department_id=department_id))


# --- Workflows ---
@router.post("/workflows")
def assign_workflow(
    payload: WorkflowAssign,
    current_user: CallerIdentity = Depends(require_hr()),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return respond(service.assign_workflow(current_user, payload), success_status=201)


@router.get("/workflows/employee/{employee_id}")
def get_employee_workflow(
    employee_id: int,
    current_user: CallerIdentity = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return respond(service.get_employee_workflow(current_user, employee_id))


@router.get("/workflows/{workflow_id}/progress")
def calculate_progress(
    workflow_id: str,
    current_user: CallerIdentity = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return respond(service.calculate_progress(current_user, workflow_id))


@router.get("/team-progress")
def get_team_progress(
    current_user: CallerIdentity = Depends(require_manager()),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return respond(service.get_team_progress(current_user))


# --- Tasks ---
@router.get("/my-tasks")
def list_my_tasks(
    current_user: CallerIdentity = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return respond(service.list_my_tasks(current_user))


@router.post("/tasks/{task_id}/complete")
def complete_task(
    task_id: str,
    payload: Optional[TaskComplete] = None,
    current_user: CallerIdentity = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return respond(service.complete_task(current_user, task_id, document_url=payload.document_url if payload else None))
