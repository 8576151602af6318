from datetime import date, datetime
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hrflow.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationFailedError
from hrflow.core.schemas import ServiceResult
from hrflow.models.employee import Employee
from hrflow.models.onboarding import (
    OnboardingTask,
    OnboardingTemplate,
    OnboardingTemplateTask,
    OnboardingWorkflow,
    TaskStatus,
    WorkflowStatus,
)
from hrflow.schemas.onboarding import (
    ProgressReport,
    TaskCompletionResponse,
    TaskResponse,
    TemplateCreate,
    TemplateResponse,
    WorkflowAssign,
    WorkflowProgressSummary,
    WorkflowResponse,
)
from hrflow.services import progress, validators
from hrflow.services.authorization import Action, CallerIdentity, EntityRefs
from hrflow.services.base import BaseService, service_operation
from hrflow.services.notification import NotificationKind
from hrflow.services.transitions import EntityType, ensure_transition, route


def task_progress(tasks) -> progress.ProgressSnapshot:
    return progress.compute((t.status for t in tasks), progress.TASK_PROGRESS)


def advance_workflow(workflow: OnboardingWorkflow, now: datetime) -> progress.ProgressSnapshot:
    """
    Re-derives progress and status from the workflow's tasks.

    The status walks the workflow graph one step at a time, so a workflow
    whose only task gets completed still passes through IN_PROGRESS.
    ``started_at`` is stamped on entering IN_PROGRESS and ``completed_at``
    on entering COMPLETED; neither is ever re-stamped.
    """
    snapshot = task_progress(workflow.tasks)
    target = WorkflowStatus(snapshot.status.value)
    path = route(EntityType.WORKFLOW, workflow.status, target)
    if path is None:
        ensure_transition(EntityType.WORKFLOW, workflow.status, target, derived=True)

    for status in path or []:
        ensure_transition(EntityType.WORKFLOW, workflow.status, status, derived=True)
        workflow.status = status
        if status == WorkflowStatus.IN_PROGRESS and workflow.started_at is None:
            workflow.started_at = now
        elif status == WorkflowStatus.COMPLETED:
            workflow.completed_at = now

    workflow.progress = snapshot.progress
    workflow.updated_at = now
    return snapshot


class OnboardingService(BaseService):
    """Onboarding templates, workflow assignment and task completion."""

    # --- Templates ---
    @service_operation("create_template")
    def create_template(self, caller: CallerIdentity, payload: TemplateCreate) -> ServiceResult:
        validators.raise_if_errors(
            validators.check_template(payload.name, payload.description, [t.model_dump() for t in payload.tasks])
        )
        self.authorize(caller, EntityRefs(), Action.CREATE_TEMPLATE)
        now = self.clock()

        def run(db: Session):
            template = OnboardingTemplate(
                id=self.id_factory(),
                name=payload.name.strip(),
                description=payload.description.strip(),
                department_id=payload.department_id,
                is_active=True,
                estimated_days=(
                    payload.estimated_days
                    if payload.estimated_days is not None
                    else max(t.days_until_due for t in payload.tasks)
                ),
                created_by=caller.user_id,
                created_at=now,
                updated_at=now,
            )
            for task in payload.tasks:
                template.tasks.append(OnboardingTemplateTask(
                    id=self.id_factory(),
                    title=task.title.strip(),
                    description=task.description.strip(),
                    days_until_due=task.days_until_due,
                    order=task.order,
                    requires_document=task.requires_document,
                ))
            db.add(template)
            db.flush()
            return TemplateResponse.model_validate(template)

        data = self.transaction(run)
        self._logger.info(f"Onboarding template {data.id} created with {len(data.tasks)} tasks")
        return ServiceResult.ok(data)

    @service_operation("list_templates")
    def list_templates(self, caller: CallerIdentity, department_id: Optional[str] = None) -> ServiceResult:
        self.authorize(caller, EntityRefs(), Action.VIEW_TEMPLATES)
        with self.reading() as db:
            query = db.query(OnboardingTemplate).filter(OnboardingTemplate.is_active.is_(True))
            if department_id:
                query = query.filter(OnboardingTemplate.department_id == department_id)
            templates = query.order_by(OnboardingTemplate.name).all()
            return ServiceResult.ok([TemplateResponse.model_validate(t) for t in templates])

    # --- Workflows ---
    @service_operation("assign_workflow")
    def assign_workflow(self, caller: CallerIdentity, payload: WorkflowAssign) -> ServiceResult:
        errors = []
        for override in payload.task_overrides:
            if override.title is not None:
                errors += validators.check_text(override.title, "Task title", validators.MAX_TITLE_LENGTH)
            if override.description is not None:
                errors += validators.check_text(
                    override.description, "Task description", validators.MAX_DESCRIPTION_LENGTH
                )
        validators.raise_if_errors(errors)
        self.authorize(caller, EntityRefs(employee_id=payload.employee_id), Action.ASSIGN_WORKFLOW)
        now = self.clock()
        start = payload.start_date or now.date()
        overrides = {o.order: o for o in payload.task_overrides}

        def run(db: Session):
            # Assignments for one employee serialize on the employee row.
            employee = (
                db.query(Employee)
                .filter(Employee.id == payload.employee_id)
                .with_for_update()
                .one_or_none()
            )
            if not employee:
                raise NotFoundError("Employee not found", error_code="EMPLOYEE_NOT_FOUND")

            template = db.get(OnboardingTemplate, payload.template_id)
            if not template or not template.is_active:
                raise NotFoundError("Onboarding template not found or inactive", error_code="TEMPLATE_NOT_FOUND")

            active = (
                db.query(OnboardingWorkflow.id)
                .filter(
                    OnboardingWorkflow.employee_id == employee.id,
                    OnboardingWorkflow.status != WorkflowStatus.COMPLETED,
                )
                .with_for_update()
                .first()
            )
            if active:
                raise ConflictError(
                    "Employee already has an active onboarding workflow",
                    error_code="WORKFLOW_EXISTS",
                    details={"workflow_id": active.id},
                )

            unknown = sorted(set(overrides) - {t.order for t in template.tasks})
            if unknown:
                raise ValidationFailedError([f"Task override references unknown task order {o}" for o in unknown])

            target = payload.target_completion_date or validators.default_due_date(
                start, max((t.days_until_due for t in template.tasks), default=0)
            )
            if target < start:
                raise ValidationFailedError("Target completion date cannot be before the start date")

            workflow = OnboardingWorkflow(
                id=self.id_factory(),
                employee_id=employee.id,
                template_id=template.id,
                status=WorkflowStatus.NOT_STARTED,
                progress=0,
                assigned_by=caller.user_id,
                assigned_at=now,
                target_completion_date=target,
                created_at=now,
                updated_at=now,
            )
            for template_task in template.tasks:
                override = overrides.get(template_task.order)
                title, description, due_date = (
                    template_task.title,
                    template_task.description,
                    validators.default_due_date(start, template_task.days_until_due),
                )
                if override:
                    title = override.title or title
                    description = override.description or description
                    due_date = override.due_date or due_date
                workflow.tasks.append(OnboardingTask(
                    id=self.id_factory(),
                    title=title.strip(),
                    description=description.strip(),
                    due_date=due_date,
                    status=TaskStatus.PENDING,
                    order=template_task.order,
                    requires_document=template_task.requires_document,
                    created_at=now,
                    updated_at=now,
                ))
            db.add(workflow)
            try:
                db.flush()
            except IntegrityError:
                # A concurrent assignment committed first
                raise ConflictError(
                    "Employee already has an active onboarding workflow",
                    error_code="WORKFLOW_EXISTS",
                )
            return WorkflowResponse.model_validate(workflow), employee.user_id, template.name

        data, employee_user_id, template_name = self.transaction(run)
        self._logger.info(f"Workflow {data.id} assigned to employee {data.employee_id} ({len(data.tasks)} tasks)")
        self.notify(NotificationKind.WORKFLOW_ASSIGNED, employee_user_id, {
            "workflow_id": data.id,
            "template_name": template_name,
            "target_completion_date": data.target_completion_date.isoformat(),
            "message": f"Your onboarding plan '{template_name}' is ready",
            "link": "/onboarding/my-tasks",
        })
        return ServiceResult.ok(data)

    @service_operation("complete_task")
    def complete_task(
        self, caller: CallerIdentity, task_id: str, document_url: Optional[str] = None
    ) -> ServiceResult:
        document_url = document_url.strip() if document_url else None
        now = self.clock()

        def run(db: Session):
            task = db.get(OnboardingTask, task_id)
            if not task:
                raise NotFoundError("Task not found", error_code="TASK_NOT_FOUND")

            # Lock the parent before touching any of its tasks.
            workflow = (
                db.query(OnboardingWorkflow)
                .filter(OnboardingWorkflow.id == task.workflow_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not workflow:
                raise NotFoundError("Workflow not found", error_code="WORKFLOW_NOT_FOUND")
            db.refresh(task)

            self.authorize(caller, EntityRefs(employee_id=workflow.employee_id), Action.COMPLETE_TASK)

            if task.status == TaskStatus.COMPLETED:
                raise InvalidStateError("Task is already completed", error_code="TASK_ALREADY_COMPLETED")
            if task.requires_document and not document_url:
                raise ValidationFailedError(
                    "This task requires a document to be uploaded",
                    error_code="DOCUMENT_REQUIRED",
                )

            task.status = TaskStatus.COMPLETED
            task.completed_at = now
            task.updated_at = now
            if document_url:
                task.document_url = document_url

            previous = workflow.status
            snapshot = advance_workflow(workflow, now)
            db.flush()
            return (
                TaskCompletionResponse(
                    task=TaskResponse.model_validate(task),
                    workflow=WorkflowResponse.model_validate(workflow),
                ),
                previous,
                snapshot,
            )

        data, previous, snapshot = self.transaction(run)
        workflow = data.workflow
        self._logger.info(
            f"Task {data.task.id} completed; workflow {workflow.id} at {workflow.progress}% ({workflow.status.value})"
        )

        self.notify(NotificationKind.TASK_COMPLETED, workflow.assigned_by, {
            "workflow_id": workflow.id,
            "task_id": data.task.id,
            "task_title": data.task.title,
            "employee_id": workflow.employee_id,
            "progress": workflow.progress,
            "message": f"Onboarding task '{data.task.title}' was completed",
        })
        if workflow.status == WorkflowStatus.COMPLETED and previous != WorkflowStatus.COMPLETED:
            self.notify(NotificationKind.WORKFLOW_COMPLETED, workflow.assigned_by, {
                "workflow_id": workflow.id,
                "employee_id": workflow.employee_id,
                "message": "An onboarding workflow has been completed",
            })
        return ServiceResult.ok(data, metadata={
            "completed_tasks": snapshot.completed_count,
            "total_tasks": snapshot.total_count,
        })

    @service_operation("get_employee_workflow")
    def get_employee_workflow(self, caller: CallerIdentity, employee_id: int) -> ServiceResult:
        with self.reading() as db:
            employee = db.get(Employee, employee_id)
            if not employee:
                raise NotFoundError("Employee not found", error_code="EMPLOYEE_NOT_FOUND")
            self.authorize(
                caller,
                EntityRefs(employee_id=employee.id, manager_id=employee.manager_id),
                Action.VIEW_WORKFLOW,
            )
            workflow = self._latest_workflow(db, employee.id)
            if not workflow:
                raise NotFoundError("No onboarding workflow found for employee", error_code="WORKFLOW_NOT_FOUND")
            return ServiceResult.ok(WorkflowResponse.model_validate(workflow))

    @service_operation("list_my_tasks")
    def list_my_tasks(self, caller: CallerIdentity) -> ServiceResult:
        self.authorize(caller, EntityRefs(employee_id=caller.employee_id), Action.VIEW_WORKFLOW)
        with self.reading() as db:
            workflow = self._latest_workflow(db, caller.employee_id)
            if not workflow:
                return ServiceResult.ok([], metadata={"workflow_id": None})
            return ServiceResult.ok(
                [TaskResponse.model_validate(t) for t in workflow.tasks],
                metadata={"workflow_id": workflow.id, "progress": workflow.progress},
            )

    @service_operation("get_team_progress")
    def get_team_progress(self, caller: CallerIdentity) -> ServiceResult:
        self.authorize(caller, EntityRefs(), Action.VIEW_TEAM)
        today = self.clock().date()
        with self.reading() as db:
            workflows = (
                db.query(OnboardingWorkflow)
                .join(Employee, OnboardingWorkflow.employee_id == Employee.id)
                .filter(Employee.manager_id == caller.employee_id)
                .order_by(OnboardingWorkflow.assigned_at.desc())
                .all()
            )
            return ServiceResult.ok([self._summarize(w, today) for w in workflows])

    @service_operation("calculate_progress")
    def calculate_progress(self, caller: CallerIdentity, workflow_id: str) -> ServiceResult:
        with self.reading() as db:
            workflow = db.get(OnboardingWorkflow, workflow_id)
            if not workflow:
                raise NotFoundError("Workflow not found", error_code="WORKFLOW_NOT_FOUND")
            self.authorize(
                caller,
                EntityRefs(employee_id=workflow.employee_id, manager_id=workflow.employee.manager_id),
                Action.VIEW_WORKFLOW,
            )
            snapshot = task_progress(workflow.tasks)
            return ServiceResult.ok(ProgressReport(
                workflow_id=workflow.id,
                progress=snapshot.progress,
                status=WorkflowStatus(snapshot.status.value),
                completed_tasks=snapshot.completed_count,
                total_tasks=snapshot.total_count,
                stored_progress=workflow.progress,
                in_sync=snapshot.progress == workflow.progress,
            ))

    # --- Internal helpers ---
    @staticmethod
    def _latest_workflow(db: Session, employee_id: int) -> Optional[OnboardingWorkflow]:
        return (
            db.query(OnboardingWorkflow)
            .filter(OnboardingWorkflow.employee_id == employee_id)
            .order_by(OnboardingWorkflow.assigned_at.desc())
            .first()
        )

    @staticmethod
    def _summarize(workflow: OnboardingWorkflow, today: date) -> WorkflowProgressSummary:
        counts: Dict[TaskStatus, int] = {status: 0 for status in TaskStatus}
        overdue = 0
        for task in workflow.tasks:
            counts[task.status] += 1
            if task.status != TaskStatus.COMPLETED and task.due_date < today:
                overdue += 1

        return WorkflowProgressSummary(
            workflow_id=workflow.id,
            employee_id=workflow.employee_id,
            employee_name=workflow.employee.full_name,
            employee_email=workflow.employee.email,
            template_name=workflow.template.name,
            status=workflow.status,
            progress=workflow.progress,
            total_tasks=len(workflow.tasks),
            completed_tasks=counts[TaskStatus.COMPLETED],
            pending_tasks=counts[TaskStatus.PENDING],
            in_progress_tasks=counts[TaskStatus.IN_PROGRESS],
            overdue_tasks=overdue,
            target_completion_date=workflow.target_completion_date,
            completed_at=workflow.completed_at,
            days_remaining=(workflow.target_completion_date - today).days,
        )
