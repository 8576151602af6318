from datetime import date, timedelta

import pytest
from conftest import TODAY

from hrflow.models.onboarding import TaskStatus, WorkflowStatus
from hrflow.schemas.onboarding import TaskOverride, TemplateCreate, TemplateTaskCreate, WorkflowAssign
from hrflow.services.notification import NotificationKind


def template_payload(**overrides):
    data = dict(
        name="Engineering onboarding",
        description="First two weeks for new engineers",
        department_id="eng",
        tasks=[
            TemplateTaskCreate(title="Set up laptop", description="Install the toolchain", days_until_due=2, order=1),
            TemplateTaskCreate(
                title="Sign NDA",
                description="Upload the signed agreement",
                days_until_due=5,
                order=2,
                requires_document=True,
            ),
        ],
    )
    data.update(overrides)
    return TemplateCreate(**data)


@pytest.fixture
def template(onboarding_service, people):
    result = onboarding_service.create_template(people.hr, template_payload())
    assert result.success, result.error
    return result.data


@pytest.fixture
def workflow(onboarding_service, people, template):
    result = onboarding_service.assign_workflow(
        people.hr, WorkflowAssign(employee_id=103, template_id=template.id, start_date=TODAY)
    )
    assert result.success, result.error
    return result.data


def test_create_template_defaults_estimated_days(template):
    assert template.estimated_days == 5
    assert template.is_active
    assert [t.order for t in template.tasks] == [1, 2]


def test_template_validation(onboarding_service, people):
    no_tasks = onboarding_service.create_template(people.hr, template_payload(tasks=[]))
    assert no_tasks.error_code == "VALIDATION_ERROR"
    assert "Template must contain at least one task" in no_tasks.error.details["errors"]

    negative = onboarding_service.create_template(people.hr, template_payload(tasks=[
        TemplateTaskCreate(title="Read handbook", description="All of it", days_until_due=-1),
    ]))
    assert negative.error.details["errors"] == ["Task 1: Days until due must be non-negative"]

    blank_name = onboarding_service.create_template(people.hr, template_payload(name=""))
    assert blank_name.error_code == "VALIDATION_ERROR"


def test_only_hr_manages_templates(onboarding_service, people, template):
    assert onboarding_service.create_template(people.manager, template_payload()).error_code == "UNAUTHORIZED"
    assert len(onboarding_service.list_templates(people.manager).data) == 1
    assert onboarding_service.list_templates(people.alice).error_code == "UNAUTHORIZED"
    assert onboarding_service.list_templates(people.hr, department_id="sales").data == []


def test_assignment_copies_template_tasks(workflow, notifier, people):
    assert workflow.status == WorkflowStatus.NOT_STARTED
    assert workflow.progress == 0
    assert workflow.assigned_by == people.hr.user_id
    assert workflow.target_completion_date == TODAY + timedelta(days=5)
    assert [t.due_date for t in workflow.tasks] == [TODAY + timedelta(days=2), TODAY + timedelta(days=5)]
    assert all(t.status == TaskStatus.PENDING for t in workflow.tasks)
    assert workflow.tasks[1].requires_document
    assert notifier.to(people.alice.user_id) == [NotificationKind.WORKFLOW_ASSIGNED]


def test_onboarding_completion_flow(onboarding_service, people, workflow, notifier):
    laptop, nda = workflow.tasks

    first = onboarding_service.complete_task(people.alice, laptop.id)
    assert first.success, first.error
    assert first.data.task.status == TaskStatus.COMPLETED
    assert first.data.workflow.progress == 50
    assert first.data.workflow.status == WorkflowStatus.IN_PROGRESS
    assert first.data.workflow.started_at is not None
    assert first.metadata["completed_tasks"] == 1
    assert first.metadata["total_tasks"] == 2

    missing_document = onboarding_service.complete_task(people.alice, nda.id)
    assert missing_document.error_code == "DOCUMENT_REQUIRED"

    second = onboarding_service.complete_task(people.alice, nda.id, document_url=" https://files.test/nda.pdf ")
    assert second.success, second.error
    assert second.data.task.document_url == "https://files.test/nda.pdf"
    assert second.data.workflow.progress == 100
    assert second.data.workflow.status == WorkflowStatus.COMPLETED
    assert second.data.workflow.completed_at is not None
    assert second.data.workflow.started_at is not None

    repeat = onboarding_service.complete_task(people.alice, laptop.id)
    assert repeat.error_code == "TASK_ALREADY_COMPLETED"

    assert notifier.to(people.hr.user_id) == [
        NotificationKind.TASK_COMPLETED,
        NotificationKind.TASK_COMPLETED,
        NotificationKind.WORKFLOW_COMPLETED,
    ]


@pytest.mark.parametrize("document_url", ["", "   "])
def test_blank_document_does_not_satisfy_required_upload(onboarding_service, people, workflow, document_url):
    laptop, nda = workflow.tasks
    assert onboarding_service.complete_task(people.alice, laptop.id).success

    result = onboarding_service.complete_task(people.alice, nda.id, document_url=document_url)
    assert result.error_code == "DOCUMENT_REQUIRED"

    report = onboarding_service.calculate_progress(people.alice, workflow.id).data
    assert report.progress == 50
    assert report.completed_tasks == 1
    assert report.status == WorkflowStatus.IN_PROGRESS
    tasks = {t.id: t for t in onboarding_service.list_my_tasks(people.alice).data}
    assert tasks[nda.id].status == TaskStatus.PENDING
    assert tasks[nda.id].document_url is None


def test_single_task_workflow_passes_through_in_progress(onboarding_service, people):
    template = onboarding_service.create_template(people.hr, template_payload(tasks=[
        TemplateTaskCreate(title="Badge photo", description="Visit reception", days_until_due=0),
    ])).data
    workflow = onboarding_service.assign_workflow(
        people.hr, WorkflowAssign(employee_id=104, template_id=template.id)
    ).data
    assert workflow.target_completion_date == TODAY

    result = onboarding_service.complete_task(people.bob, workflow.tasks[0].id)
    assert result.data.workflow.status == WorkflowStatus.COMPLETED
    assert result.data.workflow.started_at is not None
    assert result.data.workflow.completed_at is not None


def test_only_owner_completes_tasks(onboarding_service, people, workflow):
    task_id = workflow.tasks[0].id
    for caller in (people.bob, people.manager, people.hr):
        assert onboarding_service.complete_task(caller, task_id).error_code == "UNAUTHORIZED"
    assert onboarding_service.complete_task(people.alice, "missing").error_code == "TASK_NOT_FOUND"

    report = onboarding_service.calculate_progress(people.alice, workflow.id).data
    assert report.progress == 0
    assert report.in_sync


def test_second_active_workflow_conflicts(onboarding_service, people, template, workflow):
    result = onboarding_service.assign_workflow(people.hr, WorkflowAssign(employee_id=103, template_id=template.id))
    assert result.error_code == "WORKFLOW_EXISTS"
    assert result.error.details["workflow_id"] == workflow.id


def test_assignment_errors(onboarding_service, people, template):
    assert onboarding_service.assign_workflow(
        people.manager, WorkflowAssign(employee_id=103, template_id=template.id)
    ).error_code == "UNAUTHORIZED"
    assert onboarding_service.assign_workflow(
        people.hr, WorkflowAssign(employee_id=999, template_id=template.id)
    ).error_code == "EMPLOYEE_NOT_FOUND"
    assert onboarding_service.assign_workflow(
        people.hr, WorkflowAssign(employee_id=103, template_id="missing")
    ).error_code == "TEMPLATE_NOT_FOUND"

    unknown_order = onboarding_service.assign_workflow(people.hr, WorkflowAssign(
        employee_id=103, template_id=template.id, task_overrides=[TaskOverride(order=9, title="Ghost")]
    ))
    assert unknown_order.error_code == "VALIDATION_ERROR"

    backwards = onboarding_service.assign_workflow(people.hr, WorkflowAssign(
        employee_id=103, template_id=template.id, start_date=TODAY, target_completion_date=TODAY - timedelta(days=1)
    ))
    assert backwards.error_code == "VALIDATION_ERROR"


def test_task_overrides(onboarding_service, people, template):
    result = onboarding_service.assign_workflow(people.hr, WorkflowAssign(
        employee_id=103,
        template_id=template.id,
        start_date=TODAY,
        target_completion_date=date(2026, 4, 1),
        task_overrides=[TaskOverride(order=2, due_date=date(2026, 3, 20), title="Sign NDA and IP agreement")],
    ))
    assert result.success, result.error
    laptop, nda = result.data.tasks
    assert laptop.title == "Set up laptop"
    assert nda.title == "Sign NDA and IP agreement"
    assert nda.description == "Upload the signed agreement"
    assert nda.due_date == date(2026, 3, 20)
    assert result.data.target_completion_date == date(2026, 4, 1)


def test_reads(onboarding_service, people, workflow):
    assert onboarding_service.get_employee_workflow(people.alice, 103).data.id == workflow.id
    assert onboarding_service.get_employee_workflow(people.manager, 103).success
    assert onboarding_service.get_employee_workflow(people.bob, 103).error_code == "UNAUTHORIZED"
    assert onboarding_service.get_employee_workflow(people.hr, 104).error_code == "WORKFLOW_NOT_FOUND"

    tasks = onboarding_service.list_my_tasks(people.alice)
    assert [t.title for t in tasks.data] == ["Set up laptop", "Sign NDA"]
    assert tasks.metadata["workflow_id"] == workflow.id

    assert onboarding_service.list_my_tasks(people.bob).data == []


def test_team_progress(onboarding_service, people, workflow):
    onboarding_service.complete_task(people.alice, workflow.tasks[0].id)

    team = onboarding_service.get_team_progress(people.manager)
    assert team.success
    (summary,) = team.data
    assert summary.employee_name == "Alice Employee"
    assert summary.template_name == "Engineering onboarding"
    assert summary.completed_tasks == 1
    assert summary.pending_tasks == 1
    assert summary.overdue_tasks == 0
    assert summary.days_remaining == 5

    assert onboarding_service.get_team_progress(people.other_manager).data == []
    assert onboarding_service.get_team_progress(people.alice).error_code == "UNAUTHORIZED"
