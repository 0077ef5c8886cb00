"""MongoDB Atlas project IP access-list adapter."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, quote, urlparse

import httpx

from atlas_acl.providers.base import (
    AccessListAuthError,
    AccessListNotFoundError,
    AccessListPage,
    AccessListRecord,
    AccessListRequestError,
    AccessListTransportError,
    PageMetadata,
    record_matches,
)

HTTPClientFactory = Callable[..., httpx.Client]

if TYPE_CHECKING:
    from atlas_acl.convergence.entries import DesiredEntry

logger = logging.getLogger(__name__)


class AtlasAccessListApi:
    api_name = "atlas"

    def __init__(
        self,
        *,
        base_url: str,
        public_key: str,
        private_key: str,
        timeout_seconds: float = 30.0,
        items_per_page: int = 100,
        http_client_factory: HTTPClientFactory = httpx.Client,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._public_key = public_key
        self._private_key = private_key
        self._timeout_seconds = timeout_seconds
        self._items_per_page = max(1, items_per_page)
        self._http_client_factory = http_client_factory

    def create(self, project_id: str, desired: DesiredEntry) -> AccessListRecord:
        payload = [_build_entry_payload(desired)]
        response = self._request(
            "POST",
            f"/groups/{project_id}/accessList",
            json_body=payload,
        )
        self._raise_for_status(
            response,
            default_message=f"failed to create access list entry in project_id={project_id}",
        )

        body = _parse_json_object(response)
        records = _extract_records(body, project_id=project_id)
        requested = _record_from_desired(project_id, desired)
        identifiers = (desired.cidr_block, desired.ip_address, desired.aws_security_group)
        for record in records:
            if any(record_matches(record, value) for value in identifiers):
                return record
        return requested

    def get(self, project_id: str, entry: str) -> AccessListRecord:
        response = self._request("GET", _entry_path(project_id, entry))
        if response.status_code == 404:
            raise AccessListNotFoundError(
                _error_detail(
                    response,
                    default_message=(
                        f"access list entry not found project_id={project_id} entry={entry}"
                    ),
                ),
                status_code=response.status_code,
                api_error_code=_extract_api_error_code(response),
            )
        self._raise_for_status(
            response,
            default_message=(
                f"failed to read access list entry project_id={project_id} entry={entry}"
            ),
        )
        return _record_from_payload(_parse_json_object(response), project_id=project_id)

    def list_page(self, project_id: str, page_number: int) -> AccessListPage:
        response = self._request(
            "GET",
            f"/groups/{project_id}/accessList",
            params={"pageNum": page_number, "itemsPerPage": self._items_per_page},
        )
        self._raise_for_status(
            response,
            default_message=(
                f"failed to list access list entries project_id={project_id} "
                f"page={page_number}"
            ),
        )

        body = _parse_json_object(response)
        records = _extract_records(body, project_id=project_id)
        metadata = _extract_page_metadata(
            body,
            requested_page=page_number,
            items_per_page=self._items_per_page,
        )
        return AccessListPage(records=tuple(records), metadata=metadata)

    def delete(self, project_id: str, entry: str) -> None:
        response = self._request("DELETE", _entry_path(project_id, entry))
        if response.status_code == 404:
            raise AccessListNotFoundError(
                _error_detail(
                    response,
                    default_message=(
                        f"access list entry not found project_id={project_id} entry={entry}"
                    ),
                ),
                status_code=response.status_code,
                api_error_code=_extract_api_error_code(response),
            )
        self._raise_for_status(
            response,
            default_message=(
                f"failed to delete access list entry project_id={project_id} entry={entry}"
            ),
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        with self._http_client_factory(
            base_url=self._base_url,
            auth=httpx.DigestAuth(self._public_key, self._private_key),
            headers={"Accept": "application/json"},
            timeout=self._timeout_seconds,
        ) as client:
            try:
                response = client.request(method, path, json=json_body, params=params)
            except httpx.HTTPError as exc:
                raise AccessListTransportError(f"atlas request failed: {exc}") from exc
        logger.debug("atlas %s %s -> %s", method, path, response.status_code)
        return response

    def _raise_for_status(self, response: httpx.Response, *, default_message: str) -> None:
        if response.status_code < 400:
            return

        status_code = response.status_code
        if status_code in {401, 403}:
            raise AccessListAuthError(
                f"atlas authentication failed with status={status_code}",
                status_code=status_code,
                api_error_code=_extract_api_error_code(response),
            )

        raise AccessListRequestError(
            _error_detail(response, default_message=default_message),
            status_code=status_code,
            api_error_code=_extract_api_error_code(response),
        )


def _entry_path(project_id: str, entry: str) -> str:
    return f"/groups/{project_id}/accessList/{quote(entry, safe='')}"


def _build_entry_payload(desired: DesiredEntry) -> dict[str, str]:
    payload: dict[str, str] = {}
    if desired.cidr_block:
        payload["cidrBlock"] = desired.cidr_block
    if desired.ip_address:
        payload["ipAddress"] = desired.ip_address
    if desired.aws_security_group:
        payload["awsSecurityGroup"] = desired.aws_security_group
    if desired.comment:
        payload["comment"] = desired.comment
    return payload


def _record_from_desired(project_id: str, desired: DesiredEntry) -> AccessListRecord:
    return AccessListRecord(
        project_id=project_id,
        cidr_block=desired.cidr_block,
        ip_address=desired.ip_address,
        aws_security_group=desired.aws_security_group,
        comment=desired.comment,
    )


def _record_from_payload(payload: dict[str, Any], *, project_id: str) -> AccessListRecord:
    return AccessListRecord(
        project_id=_string_field(payload, "groupId") or project_id,
        cidr_block=_string_field(payload, "cidrBlock"),
        ip_address=_string_field(payload, "ipAddress"),
        aws_security_group=_string_field(payload, "awsSecurityGroup"),
        comment=_string_field(payload, "comment"),
    )


def _string_field(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if isinstance(value, str):
        return value.strip()
    return ""


def _extract_records(payload: dict[str, Any], *, project_id: str) -> list[AccessListRecord]:
    results = payload.get("results")
    if not isinstance(results, list):
        return []
    return [
        _record_from_payload(item, project_id=project_id)
        for item in results
        if isinstance(item, dict)
    ]


def _extract_page_metadata(
    payload: dict[str, Any],
    *,
    requested_page: int,
    items_per_page: int,
) -> PageMetadata:
    total_count = payload.get("totalCount")
    if not isinstance(total_count, int):
        total_count = None

    current_page = requested_page
    has_next_link = False
    links = payload.get("links")
    if isinstance(links, list):
        for link in links:
            if not isinstance(link, dict):
                continue
            rel = link.get("rel")
            href = link.get("href")
            if rel == "next":
                has_next_link = True
            elif rel == "self" and isinstance(href, str):
                current_page = _page_number_from_href(href, default=requested_page)

    if has_next_link:
        is_last_page = False
    elif isinstance(links, list) or total_count is None:
        is_last_page = True
    else:
        is_last_page = current_page * items_per_page >= total_count
    return PageMetadata(
        current_page=current_page,
        is_last_page=is_last_page,
        total_count=total_count,
    )


def _page_number_from_href(href: str, *, default: int) -> int:
    values = parse_qs(urlparse(href).query).get("pageNum")
    if not values:
        return default
    try:
        return max(1, int(values[0]))
    except ValueError:
        return default


def _parse_json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise AccessListRequestError(
            f"atlas response was not valid JSON (status={response.status_code})",
            status_code=response.status_code,
        ) from exc

    if not isinstance(data, dict):
        raise AccessListRequestError(
            f"atlas response payload must be an object (status={response.status_code})",
            status_code=response.status_code,
        )
    return data


def _extract_api_error_code(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    value = data.get("errorCode")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _error_detail(response: httpx.Response, *, default_message: str) -> str:
    detail = f"{default_message}; status={response.status_code}"
    api_error_code = _extract_api_error_code(response)
    if api_error_code:
        detail = f"{detail}; errorCode={api_error_code}"
    response_text = response.text.strip()
    if response_text:
        detail = f"{detail}; body={response_text[:240]}"
    return detail
