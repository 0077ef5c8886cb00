"""Access-list API interface and normalized record models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from atlas_acl.convergence.entries import DesiredEntry


@dataclass(frozen=True, slots=True)
class AccessListRecord:
    project_id: str
    cidr_block: str = ""
    ip_address: str = ""
    aws_security_group: str = ""
    comment: str = ""


@dataclass(frozen=True, slots=True)
class PageMetadata:
    current_page: int
    is_last_page: bool
    total_count: int | None = None


@dataclass(frozen=True, slots=True)
class AccessListPage:
    records: tuple[AccessListRecord, ...]
    metadata: PageMetadata


def record_matches(record: AccessListRecord, entry: str) -> bool:
    if not entry:
        return False
    if record.cidr_block == entry or record.ip_address == entry:
        return True
    return record.aws_security_group == entry


class AccessListApi(Protocol):
    api_name: str

    def create(self, project_id: str, desired: DesiredEntry) -> AccessListRecord:
        """Submit one access-list entry and return the record echoed by the API."""

    def get(self, project_id: str, entry: str) -> AccessListRecord:
        """Return one entry; raise AccessListNotFoundError when it is absent."""

    def list_page(self, project_id: str, page_number: int) -> AccessListPage:
        """Return one page of the project's access list."""

    def delete(self, project_id: str, entry: str) -> None:
        """Request deletion of one entry."""


class AccessListApiError(Exception):
    """Base API exception carrying the raw failure signal for classification."""

    error_code = "access_list_api_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        api_error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.api_error_code = api_error_code


class AccessListAuthError(AccessListApiError):
    error_code = "access_list_auth_error"


class AccessListNotFoundError(AccessListApiError):
    error_code = "access_list_not_found"


class AccessListRequestError(AccessListApiError):
    error_code = "access_list_request_error"


class AccessListTransportError(AccessListApiError):
    """Raised when no HTTP response was received at all."""

    error_code = "access_list_transport_error"
