"""Composite identifiers for managed access-list entries.

A composite id packs the project id and the entry key into one opaque
string: every field name and value is base64 encoded, rendered as
``name:value`` and the pairs are joined with ``-`` in sorted name order.
Neither separator can appear in standard base64 output, so decoding is
lossless for any non-empty project id and entry.
"""

from __future__ import annotations

import base64
import binascii

from atlas_acl.convergence.errors import CompositeIdError

PROJECT_ID_FIELD = "project_id"
ENTRY_FIELD = "entry"


def encode_id(project_id: str, entry: str) -> str:
    if not project_id or not entry:
        raise CompositeIdError(
            "project_id and entry are both required to build a composite id",
            operation="encode_id",
            project_id=project_id or None,
            entry=entry or None,
        )
    values = {PROJECT_ID_FIELD: project_id, ENTRY_FIELD: entry}
    return "-".join(
        f"{_encode(name)}:{_encode(values[name])}" for name in sorted(values)
    )


def decode_id(composite_id: str) -> tuple[str, str]:
    decoded: dict[str, str] = {}
    for pair in composite_id.split("-"):
        name, separator, value = pair.partition(":")
        if not separator:
            raise CompositeIdError(
                f"malformed composite id segment {pair!r}",
                operation="decode_id",
            )
        decoded[_decode(name, composite_id)] = _decode(value, composite_id)

    project_id = decoded.get(PROJECT_ID_FIELD, "")
    entry = decoded.get(ENTRY_FIELD, "")
    if not project_id or not entry:
        raise CompositeIdError(
            f"composite id is missing {PROJECT_ID_FIELD} or {ENTRY_FIELD}: {composite_id!r}",
            operation="decode_id",
        )
    return project_id, entry


def parse_import_id(import_id: str) -> tuple[str, str]:
    """Split the operator-facing ``{project_id}-{entry}`` import format."""
    project_id, separator, entry = import_id.strip().partition("-")
    if not separator or not project_id or not entry:
        raise CompositeIdError(
            "import format error: to import an access list entry, use the format "
            "{project_id}-{access_list_entry}",
            operation="import",
        )
    return project_id, entry


def _encode(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _decode(value: str, composite_id: str) -> str:
    try:
        return base64.b64decode(value.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError) as exc:
        raise CompositeIdError(
            f"composite id is not decodable: {composite_id!r}",
            operation="decode_id",
        ) from exc
