from typing import Optional

from sqlalchemy.orm import Session

from hrflow.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from hrflow.core.schemas import ServiceResult
from hrflow.models.employee import Employee
from hrflow.models.leave import LeaveBalance, LeaveRequest, LeaveStatus, LeaveType
from hrflow.schemas.leave import LeaveBalanceResponse, LeaveRejection, LeaveRequestCreate, LeaveRequestResponse
from hrflow.services import validators
from hrflow.services.authorization import Action, CallerIdentity, EntityRefs
from hrflow.services.base import BaseService, service_operation
from hrflow.services.notification import NotificationKind
from hrflow.services.transitions import EntityType, ensure_transition

BALANCE_TRACKED = frozenset({LeaveType.ANNUAL, LeaveType.SICK})


def _load_balance(db: Session, employee_id: int, year: int, lock: bool = False) -> LeaveBalance:
    query = db.query(LeaveBalance).filter(LeaveBalance.employee_id == employee_id, LeaveBalance.year == year)
    if lock:
        query = query.with_for_update()
    balance = query.first()
    if not balance:
        raise NotFoundError(f"Leave balance not found for year {year}", error_code="BALANCE_NOT_FOUND")
    return balance


def _ensure_sufficient(balance: LeaveBalance, leave_type: LeaveType, days: int) -> None:
    remaining = balance.remaining(leave_type)
    if days > remaining:
        raise ValidationFailedError(
            f"Insufficient leave balance. Requested: {days} days, Available: {remaining} days",
            error_code="INSUFFICIENT_BALANCE",
            details={"requested": days, "available": remaining},
        )


class LeaveService(BaseService):
    """Leave requests: pending -> approved | rejected, decided by the employee's manager."""

    def _load_for_update(self, db: Session, request_id: str) -> LeaveRequest:
        request = (
            db.query(LeaveRequest)
            .filter(LeaveRequest.id == request_id)
            .with_for_update()
            .first()
        )
        if not request:
            raise NotFoundError("Leave request not found", error_code="LEAVE_REQUEST_NOT_FOUND")
        return request

    @service_operation("submit_leave_request")
    def submit_leave_request(self, caller: CallerIdentity, payload: LeaveRequestCreate) -> ServiceResult:
        now = self.clock()
        errors = validators.check_leave_dates(payload.start_date, payload.end_date, now.date())
        errors += validators.check_text(payload.reason, "Reason", validators.MAX_REASON_LENGTH)
        validators.raise_if_errors(errors)
        self.authorize(caller, EntityRefs(employee_id=caller.employee_id), Action.SUBMIT_LEAVE)
        days = validators.leave_days(payload.start_date, payload.end_date)

        def run(db: Session):
            employee = db.get(Employee, caller.employee_id)
            if not employee:
                raise NotFoundError("Employee not found", error_code="EMPLOYEE_NOT_FOUND")

            overlap = (
                db.query(LeaveRequest.id)
                .filter(
                    LeaveRequest.employee_id == employee.id,
                    LeaveRequest.status == LeaveStatus.APPROVED,
                    LeaveRequest.start_date <= payload.end_date,
                    LeaveRequest.end_date >= payload.start_date,
                )
                .first()
            )
            if overlap:
                raise ConflictError(
                    "Leave request overlaps with an existing approved leave",
                    error_code="OVERLAPPING_REQUEST",
                    details={"leave_request_id": overlap.id},
                )

            if payload.leave_type in BALANCE_TRACKED:
                balance = _load_balance(db, employee.id, payload.start_date.year)
                _ensure_sufficient(balance, payload.leave_type, days)

            request = LeaveRequest(
                id=self.id_factory(),
                employee_id=employee.id,
                leave_type=payload.leave_type,
                start_date=payload.start_date,
                end_date=payload.end_date,
                days_count=days,
                reason=payload.reason.strip(),
                status=LeaveStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            db.add(request)
            db.flush()
            manager_user_id = employee.manager.user_id if employee.manager else None
            return LeaveRequestResponse.model_validate(request), manager_user_id, employee.full_name

        data, manager_user_id, employee_name = self.transaction(run)
        self._logger.info(f"Leave request {data.id} submitted for {data.days_count} days")
        self.notify(NotificationKind.LEAVE_REQUESTED, manager_user_id, {
            "leave_request_id": data.id,
            "employee_id": data.employee_id,
            "leave_type": data.leave_type.value,
            "start_date": data.start_date.isoformat(),
            "end_date": data.end_date.isoformat(),
            "message": f"{employee_name} requested {data.days_count} day(s) of {data.leave_type.value} leave",
            "link": "/leave/team",
        })
        return ServiceResult.ok(data)

    def _decide(self, caller: CallerIdentity, request_id: str, target: LeaveStatus,
                rejection_reason: Optional[str] = None):
        now = self.clock()

        def run(db: Session):
            request = self._load_for_update(db, request_id)
            employee = request.employee
            self.authorize(
                caller,
                EntityRefs(employee_id=employee.id, manager_id=employee.manager_id),
                Action.DECIDE_LEAVE,
            )
            ensure_transition(EntityType.LEAVE_REQUEST, request.status, target)

            if target == LeaveStatus.APPROVED and request.leave_type in BALANCE_TRACKED:
                balance = _load_balance(db, employee.id, request.start_date.year, lock=True)
                _ensure_sufficient(balance, request.leave_type, request.days_count)
                # Increment in SQL so parallel approvals for one employee cannot lose days.
                if request.leave_type == LeaveType.ANNUAL:
                    balance.annual_leave_used = LeaveBalance.annual_leave_used + request.days_count
                else:
                    balance.sick_leave_used = LeaveBalance.sick_leave_used + request.days_count

            request.status = target
            request.decided_by = caller.employee_id
            request.decided_at = now
            request.updated_at = now
            if rejection_reason:
                request.rejection_reason = rejection_reason
            db.flush()
            return LeaveRequestResponse.model_validate(request), employee.user_id

        return self.transaction(run)

    @service_operation("approve_leave_request")
    def approve_leave_request(self, caller: CallerIdentity, request_id: str) -> ServiceResult:
        data, employee_user_id = self._decide(caller, request_id, LeaveStatus.APPROVED)
        self._logger.info(f"Leave request {data.id} approved by employee {caller.employee_id}")
        self.notify(NotificationKind.LEAVE_APPROVED, employee_user_id, {
            "leave_request_id": data.id,
            "start_date": data.start_date.isoformat(),
            "end_date": data.end_date.isoformat(),
            "message": "Your leave request has been approved",
        })
        return ServiceResult.ok(data)

    @service_operation("reject_leave_request")
    def reject_leave_request(self, caller: CallerIdentity, request_id: str, payload: LeaveRejection) -> ServiceResult:
        validators.raise_if_errors(
            validators.check_text(payload.rejection_reason, "Rejection reason", validators.MAX_REASON_LENGTH)
        )
        data, employee_user_id = self._decide(
            caller, request_id, LeaveStatus.REJECTED, rejection_reason=payload.rejection_reason.strip()
        )
        self._logger.info(f"Leave request {data.id} rejected by employee {caller.employee_id}")
        self.notify(NotificationKind.LEAVE_REJECTED, employee_user_id, {
            "leave_request_id": data.id,
            "rejection_reason": data.rejection_reason,
            "message": "Your leave request has been rejected",
        })
        return ServiceResult.ok(data)

    @service_operation("list_my_leave_requests")
    def list_my_leave_requests(self, caller: CallerIdentity, status: Optional[LeaveStatus] = None) -> ServiceResult:
        self.authorize(caller, EntityRefs(employee_id=caller.employee_id), Action.VIEW_LEAVE)
        with self.reading() as db:
            query = db.query(LeaveRequest).filter(LeaveRequest.employee_id == caller.employee_id)
            if status:
                query = query.filter(LeaveRequest.status == status)
            requests = query.order_by(LeaveRequest.start_date.desc()).all()
            return ServiceResult.ok([LeaveRequestResponse.model_validate(r) for r in requests])

    @service_operation("list_team_leave_requests")
    def list_team_leave_requests(self, caller: CallerIdentity, status: Optional[LeaveStatus] = None) -> ServiceResult:
        self.authorize(caller, EntityRefs(), Action.VIEW_TEAM)
        with self.reading() as db:
            query = (
                db.query(LeaveRequest)
                .join(Employee, LeaveRequest.employee_id == Employee.id)
                .filter(Employee.manager_id == caller.employee_id)
            )
            if status:
                query = query.filter(LeaveRequest.status == status)
            requests = query.order_by(LeaveRequest.start_date).all()
            return ServiceResult.ok([LeaveRequestResponse.model_validate(r) for r in requests])

    @service_operation("get_leave_balance")
    def get_leave_balance(
        self, caller: CallerIdentity, employee_id: Optional[int] = None, year: Optional[int] = None
    ) -> ServiceResult:
        employee_id = employee_id or caller.employee_id
        year = year or self.clock().year
        with self.reading() as db:
            employee = db.get(Employee, employee_id) if employee_id else None
            self.authorize(
                caller,
                EntityRefs(employee_id=employee_id, manager_id=employee.manager_id if employee else None),
                Action.VIEW_LEAVE,
            )
            if not employee:
                raise NotFoundError("Employee not found", error_code="EMPLOYEE_NOT_FOUND")
            balance = _load_balance(db, employee.id, year)
            return ServiceResult.ok(LeaveBalanceResponse(
                employee_id=employee.id,
                year=balance.year,
                annual_leave_total=balance.annual_leave_total,
                annual_leave_used=balance.annual_leave_used,
                annual_leave_remaining=balance.remaining(LeaveType.ANNUAL),
                sick_leave_total=balance.sick_leave_total,
                sick_leave_used=balance.sick_leave_used,
                sick_leave_remaining=balance.remaining(LeaveType.SICK),
            ))
