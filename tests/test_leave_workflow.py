from datetime import date

from hrflow.models.leave import LeaveStatus, LeaveType
from hrflow.schemas.leave import LeaveRejection, LeaveRequestCreate
from hrflow.services.notification import NotificationKind


def request_payload(start=date(2026, 3, 10), end=date(2026, 3, 12), leave_type=LeaveType.ANNUAL, reason="Family trip"):
    return LeaveRequestCreate(leave_type=leave_type, start_date=start, end_date=end, reason=reason)


def submit(leave_service, caller, **kwargs):
    result = leave_service.submit_leave_request(caller, request_payload(**kwargs))
    assert result.success, result.error
    return result.data


def test_submit_creates_pending_request(leave_service, people, notifier):
    data = submit(leave_service, people.alice)
    assert data.status == LeaveStatus.PENDING
    assert data.days_count == 3
    assert data.employee_id == 103
    assert notifier.sent[-1][0] == NotificationKind.LEAVE_REQUESTED
    assert notifier.sent[-1][1] == people.manager.user_id


def test_approval_deducts_balance(leave_service, people, notifier):
    request = submit(leave_service, people.alice)

    approved = leave_service.approve_leave_request(people.manager, request.id)
    assert approved.success, approved.error
    assert approved.data.status == LeaveStatus.APPROVED
    assert approved.data.decided_by == people.manager.employee_id
    assert approved.data.decided_at is not None

    balance = leave_service.get_leave_balance(people.alice).data
    assert balance.annual_leave_used == 3
    assert balance.annual_leave_remaining == 17
    assert balance.sick_leave_used == 0
    assert notifier.to(people.alice.user_id) == [NotificationKind.LEAVE_APPROVED]


def test_decided_request_cannot_be_decided_again(leave_service, people):
    request = submit(leave_service, people.alice)
    leave_service.approve_leave_request(people.manager, request.id)

    twice = leave_service.approve_leave_request(people.manager, request.id)
    assert twice.error_code == "INVALID_TRANSITION"
    reject = leave_service.reject_leave_request(people.manager, request.id, LeaveRejection(rejection_reason="Late"))
    assert reject.error_code == "INVALID_TRANSITION"

    assert leave_service.get_leave_balance(people.alice).data.annual_leave_used == 3


def test_rejection_keeps_balance(leave_service, people, notifier):
    request = submit(leave_service, people.alice)

    blank = leave_service.reject_leave_request(people.manager, request.id, LeaveRejection(rejection_reason=" "))
    assert blank.error_code == "VALIDATION_ERROR"

    rejected = leave_service.reject_leave_request(
        people.manager, request.id, LeaveRejection(rejection_reason="Release week")
    )
    assert rejected.success
    assert rejected.data.status == LeaveStatus.REJECTED
    assert rejected.data.rejection_reason == "Release week"
    assert leave_service.get_leave_balance(people.alice).data.annual_leave_used == 0
    assert notifier.to(people.alice.user_id) == [NotificationKind.LEAVE_REJECTED]


def test_only_manager_decides(leave_service, people):
    request = submit(leave_service, people.alice)
    for caller in (people.alice, people.bob, people.other_manager, people.hr):
        assert leave_service.approve_leave_request(caller, request.id).error_code == "UNAUTHORIZED"
    assert leave_service.approve_leave_request(people.manager, "missing").error_code == "LEAVE_REQUEST_NOT_FOUND"


def test_insufficient_balance(leave_service, people):
    result = leave_service.submit_leave_request(people.bob, request_payload(end=date(2026, 3, 13)))
    assert result.error_code == "INSUFFICIENT_BALANCE"
    assert result.error.details["available"] == 3
    assert result.error.details["requested"] == 4


def test_approval_rechecks_balance(leave_service, people):
    first = submit(leave_service, people.bob, start=date(2026, 3, 10), end=date(2026, 3, 11))
    second = submit(leave_service, people.bob, start=date(2026, 3, 20), end=date(2026, 3, 21))

    assert leave_service.approve_leave_request(people.manager, first.id).success
    late = leave_service.approve_leave_request(people.manager, second.id)
    assert late.error_code == "INSUFFICIENT_BALANCE"
    assert leave_service.list_my_leave_requests(people.bob, LeaveStatus.PENDING).data[0].id == second.id


def test_unpaid_leave_skips_balance(leave_service, people):
    data = submit(leave_service, people.bob, end=date(2026, 3, 30), leave_type=LeaveType.UNPAID)
    assert data.days_count == 21
    assert leave_service.approve_leave_request(people.manager, data.id).success
    assert leave_service.get_leave_balance(people.bob).data.annual_leave_used == 0


def test_overlap_with_approved_leave(leave_service, people):
    request = submit(leave_service, people.alice)
    # Pending requests may overlap; only approved leave blocks new requests.
    submit(leave_service, people.alice, start=date(2026, 3, 11), end=date(2026, 3, 11))
    leave_service.approve_leave_request(people.manager, request.id)

    overlap = leave_service.submit_leave_request(people.alice, request_payload(start=date(2026, 3, 12), end=date(2026, 3, 16)))
    assert overlap.error_code == "OVERLAPPING_REQUEST"
    assert overlap.error.details["leave_request_id"] == request.id


def test_date_validation(leave_service, people):
    past = leave_service.submit_leave_request(people.alice, request_payload(start=date(2026, 2, 1)))
    assert past.error_code == "VALIDATION_ERROR"
    assert "Start date cannot be in the past" in past.error.details["errors"]

    backwards = leave_service.submit_leave_request(
        people.alice, request_payload(start=date(2026, 3, 12), end=date(2026, 3, 10))
    )
    assert "Start date must be on or before end date" in backwards.error.details["errors"]

    no_reason = leave_service.submit_leave_request(people.alice, request_payload(reason=""))
    assert no_reason.error_code == "VALIDATION_ERROR"


def test_balance_not_found_for_uncovered_year(leave_service, people):
    result = leave_service.submit_leave_request(
        people.alice, request_payload(start=date(2027, 1, 4), end=date(2027, 1, 5))
    )
    assert result.error_code == "BALANCE_NOT_FOUND"
    assert leave_service.get_leave_balance(people.alice, year=2027).error_code == "BALANCE_NOT_FOUND"


def test_listings_and_balance_access(leave_service, people):
    submit(leave_service, people.alice)
    submit(leave_service, people.bob, start=date(2026, 3, 5), end=date(2026, 3, 5))

    assert len(leave_service.list_my_leave_requests(people.alice).data) == 1
    team = leave_service.list_team_leave_requests(people.manager).data
    assert [r.employee_id for r in team] == [104, 103]
    assert leave_service.list_team_leave_requests(people.bob).error_code == "UNAUTHORIZED"

    assert leave_service.get_leave_balance(people.manager, employee_id=103).success
    assert leave_service.get_leave_balance(people.bob, employee_id=103).error_code == "UNAUTHORIZED"
    assert leave_service.submit_leave_request(people.outsider, request_payload()).error_code == (
        "EMPLOYEE_RECORD_NOT_FOUND"
    )
