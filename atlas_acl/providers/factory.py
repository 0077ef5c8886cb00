"""Access-list API selection based on runtime settings."""

from __future__ import annotations

from atlas_acl.config import AppSettings
from atlas_acl.providers.atlas import AtlasAccessListApi
from atlas_acl.providers.base import AccessListApi


def create_access_list_api(settings: AppSettings) -> AccessListApi:
    base_url = settings.atlas_base_url.strip()
    if not base_url:
        raise ValueError("atlas.base_url is required in the runtime config")

    public_key = settings.atlas_public_key.strip()
    if not public_key:
        raise ValueError("atlas.public_key is required in the runtime config")

    private_key = settings.atlas_private_key.strip()
    if not private_key:
        raise ValueError("ATLAS_PRIVATE_KEY is required to call the Atlas API")

    return AtlasAccessListApi(
        base_url=base_url,
        public_key=public_key,
        private_key=private_key,
        timeout_seconds=settings.atlas_http_timeout_seconds,
        items_per_page=settings.atlas_items_per_page,
    )
