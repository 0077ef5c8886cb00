from __future__ import annotations

import itertools

import pytest

from atlas_acl.convergence import (
    DesiredEntry,
    EntryValidationError,
    entry_key,
    validate_desired_entry,
)

IDENTIFIER_VALUES = {
    "cidr_block": "10.0.0.0/16",
    "ip_address": "192.0.2.5",
    "aws_security_group": "sg-0123456789abcdef0",
}


@pytest.mark.parametrize(
    "populated",
    [
        combination
        for size in range(len(IDENTIFIER_VALUES) + 1)
        for combination in itertools.combinations(IDENTIFIER_VALUES, size)
    ],
)
def test_validation_requires_exactly_one_identifier(populated: tuple[str, ...]) -> None:
    desired = DesiredEntry(**{name: IDENTIFIER_VALUES[name] for name in populated})

    if len(populated) == 1:
        assert validate_desired_entry(desired) is desired
    else:
        with pytest.raises(EntryValidationError, match="exactly one of"):
            validate_desired_entry(desired)


def test_validation_rejects_whitespace_only_identifier() -> None:
    with pytest.raises(EntryValidationError, match="exactly one of"):
        validate_desired_entry(DesiredEntry(cidr_block="   "))


@pytest.mark.parametrize("cidr_block", ["10.0.0.1/16", "10.0.0.0", "not-a-cidr", "10.0.0.0/33"])
def test_validation_rejects_non_network_cidr(cidr_block: str) -> None:
    with pytest.raises(EntryValidationError):
        validate_desired_entry(DesiredEntry(cidr_block=cidr_block))


@pytest.mark.parametrize("cidr_block", ["10.0.0.0/16", "192.0.2.5/32", "2001:db8::/32"])
def test_validation_accepts_normalized_cidr(cidr_block: str) -> None:
    validate_desired_entry(DesiredEntry(cidr_block=cidr_block))


def test_validation_rejects_invalid_ip_address() -> None:
    with pytest.raises(EntryValidationError, match="valid IP"):
        validate_desired_entry(DesiredEntry(ip_address="300.1.1.1"))


def test_validation_error_carries_project_context() -> None:
    with pytest.raises(EntryValidationError) as exc_info:
        validate_desired_entry(DesiredEntry(), project_id="proj1")

    assert exc_info.value.project_id == "proj1"
    assert "project_id=proj1" in str(exc_info.value)


def test_entry_key_prefers_cidr_then_ip_then_security_group() -> None:
    assert entry_key(DesiredEntry(cidr_block="10.0.0.0/16")) == "10.0.0.0/16"
    assert entry_key(DesiredEntry(ip_address="192.0.2.5")) == "192.0.2.5"
    assert entry_key(DesiredEntry(aws_security_group="sg-1")) == "sg-1"
