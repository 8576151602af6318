import itertools
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hrflow.core.exceptions import AccessDeniedError, ConflictError, InvalidStateError, NotFoundError
from hrflow.core.schemas import ServiceResult
from hrflow.models.appraisal import Appraisal, AppraisalStatus, Goal, GoalStatus
from hrflow.models.employee import Employee
from hrflow.schemas.appraisal import (
    AppraisalCreate,
    AppraisalPage,
    AppraisalResponse,
    AppraisalSummary,
    GoalChanges,
    GoalStatusUpdate,
    ManagerReviewSubmit,
    SelfAssessmentSubmit,
)
from hrflow.services import progress, validators
from hrflow.services.authorization import Action, CallerIdentity, EntityRefs
from hrflow.services.base import BaseService, service_operation
from hrflow.services.collection import CollectionChanges, MutationOutcome, apply_changes
from hrflow.services.notification import NotificationKind
from hrflow.services.transitions import EntityType, ensure_transition

GOAL_FIELDS = frozenset({"title", "description", "target_date", "status", "notes"})
# Assessment and review submissions may only move goal status and notes.
GOAL_STATUS_FIELDS = frozenset({"status", "notes"})


def goal_progress(goals: Iterable[Goal]) -> progress.ProgressSnapshot:
    return progress.compute((g.status for g in goals), progress.GOAL_PROGRESS)


def to_response(appraisal: Appraisal) -> AppraisalResponse:
    data = AppraisalResponse.model_validate(appraisal)
    data.goal_progress = goal_progress(appraisal.goals).progress
    return data


def to_summary(appraisal: Appraisal) -> AppraisalSummary:
    snapshot = goal_progress(appraisal.goals)
    return AppraisalSummary(
        id=appraisal.id,
        employee_id=appraisal.employee_id,
        employee_name=appraisal.employee.full_name,
        reviewer_id=appraisal.reviewer_id,
        reviewer_name=appraisal.reviewer.full_name,
        review_period_start=appraisal.review_period_start,
        review_period_end=appraisal.review_period_end,
        status=appraisal.status,
        rating=appraisal.rating,
        goal_count=snapshot.total_count,
        achieved_goal_count=sum(1 for g in appraisal.goals if g.status == GoalStatus.ACHIEVED),
        goal_progress=snapshot.progress,
        submitted_at=appraisal.submitted_at,
        completed_at=appraisal.completed_at,
    )


class AppraisalService(BaseService):
    """
    Appraisal cycle orchestration.

    Every transition reloads the appraisal and its goals under a row lock,
    re-checks the caller's relationship and the status graph against that
    fresh copy, then writes parent and goals back in the same transaction.
    Notifications go out only after the commit.
    """

    # --- Internal helpers ---
    def _load_for_update(self, db: Session, appraisal_id: str) -> Appraisal:
        appraisal = (
            db.query(Appraisal)
            .filter(Appraisal.id == appraisal_id)
            .with_for_update()
            .first()
        )
        if not appraisal:
            raise NotFoundError("Appraisal not found", error_code="APPRAISAL_NOT_FOUND")
        return appraisal

    @staticmethod
    def _refs(appraisal: Appraisal) -> EntityRefs:
        return EntityRefs(
            employee_id=appraisal.employee_id,
            reviewer_id=appraisal.reviewer_id,
            manager_id=appraisal.employee.manager_id if appraisal.employee else None,
        )

    def _apply_goal_changes(self, appraisal: Appraisal, changes: CollectionChanges, fields, now) -> MutationOutcome:
        positions = itertools.count(max((g.position for g in appraisal.goals), default=-1) + 1)

        def build(**values):
            return Goal(position=next(positions), **values)

        return apply_changes(
            appraisal.goals,
            changes,
            mutable_fields=fields,
            factory=build,
            id_factory=self.id_factory,
            now=now,
        )

    @staticmethod
    def _check_status_updates(updates: List[GoalStatusUpdate]) -> List[str]:
        errors = []
        for update in updates:
            errors += validators.check_text(update.notes, "Goal notes", validators.MAX_NOTES_LENGTH, required=False)
        return errors

    # --- Creation ---
    @service_operation("create_appraisal")
    def create_appraisal(self, caller: CallerIdentity, payload: AppraisalCreate) -> ServiceResult:
        errors = validators.check_review_period(payload.review_period_start, payload.review_period_end)
        for i, goal in enumerate(payload.goals):
            errors += validators.check_goal(goal.model_dump(), index=i)
        validators.raise_if_errors(errors)
        now = self.clock()

        def run(db: Session):
            employee = db.get(Employee, payload.employee_id)
            if not employee:
                raise NotFoundError("Employee not found", error_code="EMPLOYEE_NOT_FOUND")
            reviewer = db.get(Employee, payload.reviewer_id)
            if not reviewer:
                raise NotFoundError("Reviewer not found", error_code="REVIEWER_NOT_FOUND")

            self.authorize(
                caller,
                EntityRefs(employee_id=employee.id, reviewer_id=reviewer.id, manager_id=employee.manager_id),
                Action.CREATE_APPRAISAL,
            )
            if employee.manager_id != reviewer.id:
                raise AccessDeniedError("Reviewer is not the employee's manager", error_code="INVALID_MANAGER")

            duplicate = db.query(Appraisal.id).filter(
                Appraisal.employee_id == employee.id,
                Appraisal.review_period_start == payload.review_period_start,
                Appraisal.review_period_end == payload.review_period_end,
            ).first()
            if duplicate:
                raise ConflictError(
                    "An appraisal already exists for this employee and review period",
                    error_code="APPRAISAL_EXISTS",
                )

            appraisal = Appraisal(
                id=self.id_factory(),
                employee_id=employee.id,
                reviewer_id=reviewer.id,
                review_period_start=payload.review_period_start,
                review_period_end=payload.review_period_end,
                status=AppraisalStatus.DRAFT,
                created_at=now,
                updated_at=now,
            )
            self._apply_goal_changes(
                appraisal,
                CollectionChanges(to_add=[g.model_dump() for g in payload.goals]),
                GOAL_FIELDS,
                now,
            )
            db.add(appraisal)
            try:
                db.flush()
            except IntegrityError:
                raise ConflictError(
                    "An appraisal already exists for this employee and review period",
                    error_code="APPRAISAL_EXISTS",
                )
            return to_response(appraisal), employee.user_id

        data, employee_user_id = self.transaction(run)
        self._logger.info(f"Appraisal {data.id} created in {data.status.value} for employee {data.employee_id}")
        self.notify(NotificationKind.APPRAISAL_CREATED, employee_user_id, {
            "appraisal_id": data.id,
            "message": (
                f"An appraisal for {data.review_period_start.isoformat()} to "
                f"{data.review_period_end.isoformat()} has been opened"
            ),
            "link": f"/appraisals/{data.id}",
        })
        return ServiceResult.ok(data)

    # --- Reads ---
    @service_operation("get_appraisal")
    def get_appraisal(self, caller: CallerIdentity, appraisal_id: str) -> ServiceResult:
        with self.reading() as db:
            appraisal = db.get(Appraisal, appraisal_id)
            if not appraisal:
                raise NotFoundError("Appraisal not found", error_code="APPRAISAL_NOT_FOUND")
            self.authorize(caller, self._refs(appraisal), Action.VIEW_APPRAISAL)
            return ServiceResult.ok(to_response(appraisal))

    @service_operation("list_my_appraisals")
    def list_my_appraisals(self, caller: CallerIdentity) -> ServiceResult:
        self.authorize(caller, EntityRefs(employee_id=caller.employee_id), Action.VIEW_APPRAISAL)
        with self.reading() as db:
            appraisals = (
                db.query(Appraisal)
                .filter(Appraisal.employee_id == caller.employee_id)
                .order_by(Appraisal.review_period_start.desc())
                .all()
            )
            return ServiceResult.ok([to_summary(a) for a in appraisals], metadata={"count": len(appraisals)})

    @service_operation("list_team_appraisals")
    def list_team_appraisals(self, caller: CallerIdentity, status: Optional[AppraisalStatus] = None) -> ServiceResult:
        self.authorize(caller, EntityRefs(), Action.VIEW_TEAM)
        with self.reading() as db:
            query = db.query(Appraisal).filter(Appraisal.reviewer_id == caller.employee_id)
            if status:
                query = query.filter(Appraisal.status == status)
            appraisals = query.order_by(Appraisal.review_period_start.desc()).all()
            return ServiceResult.ok([to_summary(a) for a in appraisals], metadata={"count": len(appraisals)})

    @service_operation("list_all_appraisals")
    def list_all_appraisals(
        self,
        caller: CallerIdentity,
        page: int = 1,
        limit: int = 20,
        status: Optional[AppraisalStatus] = None,
    ) -> ServiceResult:
        validators.raise_if_errors(validators.check_pagination(page, limit))
        self.authorize(caller, EntityRefs(), Action.LIST_ALL_APPRAISALS)
        with self.reading() as db:
            query = db.query(Appraisal)
            if status:
                query = query.filter(Appraisal.status == status)
            total = query.count()
            appraisals = (
                query.order_by(Appraisal.created_at.desc(), Appraisal.id)
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return ServiceResult.ok(AppraisalPage(
                items=[to_summary(a) for a in appraisals],
                total=total,
                page=page,
                limit=limit,
            ))

    # --- Transitions ---
    @service_operation("submit_self_assessment")
    def submit_self_assessment(
        self, caller: CallerIdentity, appraisal_id: str, payload: SelfAssessmentSubmit
    ) -> ServiceResult:
        errors = validators.check_text(payload.self_assessment, "Self-assessment", validators.MAX_ASSESSMENT_LENGTH)
        errors += self._check_status_updates(payload.goals)
        validators.raise_if_errors(errors)
        now = self.clock()

        def run(db: Session):
            appraisal = self._load_for_update(db, appraisal_id)
            self.authorize(caller, self._refs(appraisal), Action.SUBMIT_SELF_ASSESSMENT)
            ensure_transition(EntityType.APPRAISAL, appraisal.status, AppraisalStatus.SUBMITTED)

            outcome = self._apply_goal_changes(
                appraisal,
                CollectionChanges(to_update=[g.model_dump() for g in payload.goals]),
                GOAL_STATUS_FIELDS,
                now,
            )
            appraisal.self_assessment = payload.self_assessment.strip()
            appraisal.status = AppraisalStatus.SUBMITTED
            appraisal.submitted_at = now
            appraisal.updated_at = now
            db.flush()
            return to_response(appraisal), outcome, appraisal.reviewer.user_id

        data, outcome, reviewer_user_id = self.transaction(run)
        self._logger.info(f"Self-assessment submitted for appraisal {data.id}")
        self.notify(NotificationKind.SELF_ASSESSMENT_SUBMITTED, reviewer_user_id, {
            "appraisal_id": data.id,
            "employee_id": data.employee_id,
            "message": "A self-assessment is ready for your review",
            "link": f"/appraisals/{data.id}",
        })
        return ServiceResult.ok(data, metadata=outcome.as_metadata())

    @service_operation("submit_manager_review")
    def submit_manager_review(
        self, caller: CallerIdentity, appraisal_id: str, payload: ManagerReviewSubmit
    ) -> ServiceResult:
        errors = validators.check_text(payload.manager_feedback, "Manager feedback", validators.MAX_FEEDBACK_LENGTH)
        errors += validators.check_rating(payload.rating)
        errors += self._check_status_updates(payload.goals)
        validators.raise_if_errors(errors)
        now = self.clock()

        def run(db: Session):
            appraisal = self._load_for_update(db, appraisal_id)
            self.authorize(caller, self._refs(appraisal), Action.SUBMIT_REVIEW)
            ensure_transition(EntityType.APPRAISAL, appraisal.status, AppraisalStatus.COMPLETED)

            outcome = self._apply_goal_changes(
                appraisal,
                CollectionChanges(to_update=[g.model_dump() for g in payload.goals]),
                GOAL_STATUS_FIELDS,
                now,
            )
            appraisal.manager_feedback = payload.manager_feedback.strip()
            appraisal.rating = payload.rating
            appraisal.status = AppraisalStatus.COMPLETED
            appraisal.completed_at = now
            appraisal.updated_at = now
            db.flush()
            return to_response(appraisal), outcome, appraisal.employee.user_id

        data, outcome, employee_user_id = self.transaction(run)
        self._logger.info(f"Review completed for appraisal {data.id} with rating {data.rating}")
        self.notify(NotificationKind.REVIEW_COMPLETED, employee_user_id, {
            "appraisal_id": data.id,
            "rating": data.rating,
            "message": "Your performance review has been completed",
            "link": f"/appraisals/{data.id}",
        })
        return ServiceResult.ok(data, metadata=outcome.as_metadata())

    @service_operation("update_goals")
    def update_goals(self, caller: CallerIdentity, appraisal_id: str, changes: GoalChanges) -> ServiceResult:
        errors = []
        for i, goal in enumerate(changes.add):
            errors += validators.check_goal(goal.model_dump(), index=i)
        for update in changes.update:
            errors += validators.check_goal(update.model_dump(), partial=True)
        validators.raise_if_errors(errors)
        now = self.clock()

        def run(db: Session):
            appraisal = self._load_for_update(db, appraisal_id)
            self.authorize(caller, self._refs(appraisal), Action.UPDATE_GOALS)
            if appraisal.status != AppraisalStatus.DRAFT:
                raise InvalidStateError(
                    f"Goals can only be modified while the appraisal is in {AppraisalStatus.DRAFT.value} status",
                    details={"status": appraisal.status.value},
                )

            outcome = self._apply_goal_changes(
                appraisal,
                CollectionChanges(
                    to_add=[g.model_dump() for g in changes.add],
                    to_update=[g.model_dump() for g in changes.update],
                    to_remove=list(changes.remove),
                ),
                GOAL_FIELDS,
                now,
            )
            appraisal.updated_at = now
            db.flush()
            return to_response(appraisal), outcome, appraisal.employee.user_id

        data, outcome, employee_user_id = self.transaction(run)
        self._logger.info(
            f"Goals updated for appraisal {data.id}",
            extra={"matched_count": outcome.matched_count, "added": len(outcome.added_ids)},
        )
        self.notify(NotificationKind.GOALS_UPDATED, employee_user_id, {
            "appraisal_id": data.id,
            "message": "Your appraisal goals have been updated",
            "link": f"/appraisals/{data.id}",
        })
        return ServiceResult.ok(data, metadata=outcome.as_metadata())
