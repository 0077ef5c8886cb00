"""Remote access-list API adapters."""

from atlas_acl.providers.base import (
    AccessListApi,
    AccessListApiError,
    AccessListAuthError,
    AccessListNotFoundError,
    AccessListPage,
    AccessListRecord,
    AccessListRequestError,
    AccessListTransportError,
    PageMetadata,
    record_matches,
)
from atlas_acl.providers.factory import create_access_list_api

__all__ = [
    "AccessListApi",
    "AccessListApiError",
    "AccessListAuthError",
    "AccessListNotFoundError",
    "AccessListPage",
    "AccessListRecord",
    "AccessListRequestError",
    "AccessListTransportError",
    "PageMetadata",
    "create_access_list_api",
    "record_matches",
]
