from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from atlas_acl.convergence import BackoffPolicy, DesiredEntry, entry_key
from atlas_acl.providers import (
    AccessListApiError,
    AccessListNotFoundError,
    AccessListPage,
    AccessListRecord,
    AccessListRequestError,
    PageMetadata,
)

PROJECT_ID = "5f1a2b3c4d5e6f7a8b9c0d1e"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float, *, cancel_event: threading.Event | None = None) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


ApiStep = Callable[[], object]


@dataclass
class FakeAccessListApi:
    """Scripted API: each call pops the next step for that operation.

    A step is either an exception instance (raised) or a value (returned).
    When a script runs dry the operation's default is used; the default
    ``get`` returns entries created through this fake and not-found otherwise.
    """

    api_name: str = "fake"
    create_script: list[object] = field(default_factory=list)
    get_script: list[object] = field(default_factory=list)
    delete_script: list[object] = field(default_factory=list)
    list_script: list[object] = field(default_factory=list)
    calls: list[tuple[str, tuple[object, ...]]] = field(default_factory=list)
    created: dict[tuple[str, str], AccessListRecord] = field(default_factory=dict)

    def create(self, project_id: str, desired: DesiredEntry) -> AccessListRecord:
        self.calls.append(("create", (project_id, desired)))
        default = AccessListRecord(
            project_id=project_id,
            cidr_block=desired.cidr_block,
            ip_address=desired.ip_address,
            aws_security_group=desired.aws_security_group,
            comment=desired.comment,
        )
        result = self._next(self.create_script, default)
        self.created[(project_id, entry_key(desired))] = result  # type: ignore[assignment]
        return result  # type: ignore[return-value]

    def get(self, project_id: str, entry: str) -> AccessListRecord:
        self.calls.append(("get", (project_id, entry)))
        default: object = self.created.get(
            (project_id, entry),
            AccessListNotFoundError(
                f"entry {entry} not found", status_code=404,
                api_error_code="ATLAS_NETWORK_PERMISSION_ENTRY_NOT_FOUND",
            ),
        )
        return self._next(self.get_script, default)  # type: ignore[return-value]

    def list_page(self, project_id: str, page_number: int) -> AccessListPage:
        self.calls.append(("list_page", (project_id, page_number)))
        default = page([], page_number=page_number, last=True)
        return self._next(self.list_script, default)  # type: ignore[return-value]

    def delete(self, project_id: str, entry: str) -> None:
        self.calls.append(("delete", (project_id, entry)))
        self._next(self.delete_script, None)
        self.created.pop((project_id, entry), None)

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def _next(self, script: list[object], default: object) -> object:
        step = script.pop(0) if script else default
        if isinstance(step, BaseException):
            raise step
        return step


def page(
    records: list[AccessListRecord],
    *,
    page_number: int = 1,
    last: bool = True,
) -> AccessListPage:
    return AccessListPage(
        records=tuple(records),
        metadata=PageMetadata(current_page=page_number, is_last_page=last),
    )


def record(entry: str, *, project_id: str = PROJECT_ID) -> AccessListRecord:
    if "/" in entry:
        return AccessListRecord(project_id=project_id, cidr_block=entry)
    return AccessListRecord(project_id=project_id, ip_address=entry, cidr_block=f"{entry}/32")


def server_error() -> AccessListApiError:
    return AccessListRequestError(
        "failed request; status=500; errorCode=UNEXPECTED_ERROR",
        status_code=500,
        api_error_code="UNEXPECTED_ERROR",
    )


def not_found() -> AccessListApiError:
    return AccessListNotFoundError(
        "access list entry not found; status=404",
        status_code=404,
        api_error_code="ATLAS_NETWORK_PERMISSION_ENTRY_NOT_FOUND",
    )


def bad_request() -> AccessListApiError:
    return AccessListRequestError(
        "invalid request; status=400; errorCode=INVALID_ATTRIBUTE",
        status_code=400,
        api_error_code="INVALID_ATTRIBUTE",
    )


FIXED_BACKOFF = BackoffPolicy(
    initial_delay_seconds=0.0,
    min_interval_seconds=1.0,
    max_interval_seconds=1.0,
)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def api() -> FakeAccessListApi:
    return FakeAccessListApi()
