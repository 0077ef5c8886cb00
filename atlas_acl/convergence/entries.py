"""Desired access-list entries and their local validation."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

from atlas_acl.convergence.errors import EntryValidationError


@dataclass(frozen=True, slots=True)
class DesiredEntry:
    cidr_block: str = ""
    ip_address: str = ""
    aws_security_group: str = ""
    comment: str = ""


def entry_key(desired: DesiredEntry) -> str:
    if desired.cidr_block:
        return desired.cidr_block
    if desired.ip_address:
        return desired.ip_address
    return desired.aws_security_group


def validate_desired_entry(desired: DesiredEntry, *, project_id: str = "") -> DesiredEntry:
    populated = [
        name
        for name, value in (
            ("cidr_block", desired.cidr_block),
            ("ip_address", desired.ip_address),
            ("aws_security_group", desired.aws_security_group),
        )
        if value.strip()
    ]
    if len(populated) != 1:
        raise EntryValidationError(
            "exactly one of cidr_block, ip_address or aws_security_group must be set "
            f"(received {', '.join(populated) or 'none'})",
            operation="validate",
            project_id=project_id or None,
        )

    if desired.cidr_block:
        _validate_cidr_block(desired.cidr_block, project_id=project_id)
    elif desired.ip_address:
        _validate_ip_address(desired.ip_address, project_id=project_id)
    elif desired.aws_security_group != desired.aws_security_group.strip():
        raise EntryValidationError(
            "aws_security_group must not contain surrounding whitespace",
            operation="validate",
            project_id=project_id or None,
            entry=desired.aws_security_group,
        )
    return desired


def _validate_cidr_block(value: str, *, project_id: str) -> None:
    try:
        network = ipaddress.ip_network(value, strict=False)
    except ValueError as exc:
        raise EntryValidationError(
            f"expected cidr_block to contain a valid CIDR, got {value!r}",
            operation="validate",
            project_id=project_id or None,
            entry=value,
        ) from exc

    if "/" not in value or str(network) != value:
        raise EntryValidationError(
            f"expected cidr_block to contain a valid network CIDR, expected {network}, "
            f"got {value}",
            operation="validate",
            project_id=project_id or None,
            entry=value,
        )


def _validate_ip_address(value: str, *, project_id: str) -> None:
    try:
        ipaddress.ip_address(value)
    except ValueError as exc:
        raise EntryValidationError(
            f"expected ip_address to contain a valid IP, got {value!r}",
            operation="validate",
            project_id=project_id or None,
            entry=value,
        ) from exc
