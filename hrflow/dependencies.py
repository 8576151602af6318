"""
Service providers and result-to-HTTP translation for the routers.

The orchestrators are built once per application (see ``hrflow.main``) and
parked on ``app.state``; routes receive them through these dependencies.
"""
from fastapi import Request
from fastapi.responses import JSONResponse

from hrflow.core.exceptions import ErrorKind
from hrflow.core.schemas import ServiceResult
from hrflow.services.appraisal_service import AppraisalService
from hrflow.services.leave_service import LeaveService
from hrflow.services.onboarding_service import OnboardingService

STATUS_BY_KIND = {
    ErrorKind.VALIDATION_ERROR: 422,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.PERSISTENCE_ERROR: 503,
}


def get_appraisal_service(request: Request) -> AppraisalService:
    return request.app.state.appraisal_service


def get_onboarding_service(request: Request) -> OnboardingService:
    return request.app.state.onboarding_service


def get_leave_service(request: Request) -> LeaveService:
    return request.app.state.leave_service


def respond(result: ServiceResult, success_status: int = 200) -> JSONResponse:
    if result.success:
        return JSONResponse(status_code=success_status, content=result.to_dict())
    return JSONResponse(status_code=STATUS_BY_KIND.get(result.error_kind, 400), content=result.to_dict())
