from typing import Optional

from fastapi import APIRouter, Depends

from hrflow.dependencies import get_appraisal_service, respond
from hrflow.models.appraisal import AppraisalStatus
from hrflow.routers.auth_deps import get_current_user, require_hr, require_manager
from hrflow.schemas.appraisal import AppraisalCreate, GoalChanges, ManagerReviewSubmit, SelfAssessmentSubmit
from hrflow.services.appraisal_service import AppraisalService
from hrflow.services.authorization import CallerIdentity

router = APIRouter(prefix="/appraisals", tags=["Appraisals"])


@router.post("/")
def create_appraisal(
    payload: AppraisalCreate,
    current_user: CallerIdentity = Depends(require_manager()),
    service: AppraisalService = Depends(get_appraisal_service),
):
    return respond(service.create_appraisal(current_user, payload), success_status=201)


@router.get("/")
def list_all_appraisals(
    page: int = 1,
    limit: int = 20,
    status: Optional[AppraisalStatus] = None,
    current_user: CallerIdentity = Depends(require_hr()),
    service: AppraisalService = Depends(get_appraisal_service),
):
    return respond(service.list_all_appraisals(current_user, page=page, limit=limit, status=status))


@router.get("/my")
def list_my_appraisals(
    current_user: CallerIdentity = Depends(get_current_user),
    service: AppraisalService = Depends(get_appraisal_service),
):
    return respond(service.list_my_appraisals(current_user))


@router.get("/team")
def list_team_appraisals(
    status: Optional[AppraisalStatus] = None,
    current_user: CallerIdentity = Depends(require_manager()),
    service: AppraisalService = Depends(get_appraisal_service),
):
    return respond(service.list_team_appraisals(current_user, status=status))


@router.get("/{appraisal_id}")
def get_appraisal(
    appraisal_id: str,
    current_user: CallerIdentity = Depends(get_current_user),
    service: AppraisalService = Depends(get_appraisal_service),
):
    return respond(service.get_appraisal(current_user, appraisal_id))


@router.post("/{appraisal_id}/self-assessment")
def submit_self_assessment(
    appraisal_id: str,
    payload: SelfAssessmentSubmit,
    current_user: CallerIdentity = Depends(get_current_user),
    service: AppraisalService = Depends(get_appraisal_service),
):
    return respond(service.submit_self_assessment(current_user, appraisal_id, payload))


@router.post("/{appraisal_id}/review")
def submit_manager_review(
    appraisal_id: str,
    payload: ManagerReviewSubmit,
    current_user: CallerIdentity = Depends(require_manager()),
    service: AppraisalService = Depends(get_appraisal_service),
):
    return respond(service.submit_manager_review(current_user, appraisal_id, payload))


@router.put("/{appraisal_id}/goals")
def update_goals(
    appraisal_id: str,
    changes: GoalChanges,
    current_user: CallerIdentity = Depends(require_manager()),
    service: AppraisalService = Depends(get_appraisal_service),
):
    return respond(service.update_goals(current_user, appraisal_id, changes))
