from __future__ import annotations

import pytest

from atlas_acl.convergence import (
    DeadlineExceededError,
    Deadline,
    ExistenceScanIncompleteError,
    ExistenceScanner,
    PermanentFailureError,
)
from atlas_acl.providers import AccessListRecord
from tests.convergence.conftest import (
    FIXED_BACKOFF,
    PROJECT_ID,
    FakeAccessListApi,
    FakeClock,
    bad_request,
    not_found,
    page,
    record,
    server_error,
)


def _scanner(api: FakeAccessListApi, *, envelope: float = 120.0) -> ExistenceScanner:
    return ExistenceScanner(api, backoff=FIXED_BACKOFF, envelope_timeout_seconds=envelope)


def _listed_pages(api: FakeAccessListApi) -> list[object]:
    return [args[1] for name, args in api.calls if name == "list_page"]


def test_scan_stops_at_first_match(api: FakeAccessListApi, clock: FakeClock) -> None:
    api.list_script = [
        page([record("10.1.0.0/16")], page_number=1, last=False),
        page([record("10.0.0.0/16")], page_number=2, last=False),
    ]

    found = _scanner(api).scan(PROJECT_ID, "10.0.0.0/16", Deadline(clock=clock, timeout_seconds=60))

    assert found is True
    assert _listed_pages(api) == [1, 2]


def test_scan_matches_ip_address_field(api: FakeAccessListApi, clock: FakeClock) -> None:
    api.list_script = [page([record("192.0.2.5")])]

    assert _scanner(api).scan(PROJECT_ID, "192.0.2.5", Deadline(clock=clock, timeout_seconds=60))


def test_scan_matches_security_group_field(api: FakeAccessListApi, clock: FakeClock) -> None:
    api.list_script = [
        page([AccessListRecord(project_id=PROJECT_ID, aws_security_group="sg-0123")]),
    ]

    assert _scanner(api).scan(PROJECT_ID, "sg-0123", Deadline(clock=clock, timeout_seconds=60))


def test_scan_reports_absent_after_last_page(api: FakeAccessListApi, clock: FakeClock) -> None:
    api.list_script = [
        page([record("10.1.0.0/16")], page_number=1, last=False),
        page([record("10.2.0.0/16")], page_number=2, last=True),
    ]

    found = _scanner(api).scan(PROJECT_ID, "10.0.0.0/16", Deadline(clock=clock, timeout_seconds=60))

    assert found is False
    assert _listed_pages(api) == [1, 2]
    assert clock.sleeps == []


def test_scan_restarts_from_first_page_after_transient_failure(
    api: FakeAccessListApi,
    clock: FakeClock,
) -> None:
    api.list_script = [
        page([record("10.1.0.0/16")], page_number=1, last=False),
        server_error(),
        page([record("10.1.0.0/16")], page_number=1, last=False),
        page([record("10.2.0.0/16")], page_number=2, last=False),
        page([record("10.0.0.0/16")], page_number=3, last=True),
    ]

    found = _scanner(api).scan(PROJECT_ID, "10.0.0.0/16", Deadline(clock=clock, timeout_seconds=60))

    assert found is True
    assert _listed_pages(api) == [1, 2, 1, 2, 3]
    assert clock.sleeps == [1.0]


def test_scan_never_reports_absent_from_partial_page_set(
    api: FakeAccessListApi,
    clock: FakeClock,
) -> None:
    api.list_script = [
        page([record("10.1.0.0/16")], page_number=1, last=False),
        server_error(),
        page([record("10.1.0.0/16")], page_number=1, last=False),
        server_error(),
    ]
    api.list_script.extend(server_error() for _ in range(20))

    with pytest.raises(ExistenceScanIncompleteError):
        _scanner(api, envelope=3.0).scan(
            PROJECT_ID,
            "10.0.0.0/16",
            Deadline(clock=clock, timeout_seconds=600),
        )


@pytest.mark.parametrize("failure", [bad_request, not_found])
def test_scan_surfaces_non_transient_listing_failures(
    api: FakeAccessListApi,
    clock: FakeClock,
    failure: object,
) -> None:
    api.list_script = [failure()]  # type: ignore[operator]

    with pytest.raises(PermanentFailureError) as exc_info:
        _scanner(api).scan(PROJECT_ID, "10.0.0.0/16", Deadline(clock=clock, timeout_seconds=60))

    assert exc_info.value.project_id == PROJECT_ID
    assert exc_info.value.entry == "10.0.0.0/16"
    assert api.count("list_page") == 1


def test_scan_raises_deadline_exceeded_when_caller_deadline_passes(
    api: FakeAccessListApi,
    clock: FakeClock,
) -> None:
    api.list_script = [server_error() for _ in range(10)]

    with pytest.raises(DeadlineExceededError):
        _scanner(api).scan(PROJECT_ID, "10.0.0.0/16", Deadline(clock=clock, timeout_seconds=2.5))
