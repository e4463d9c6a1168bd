from .base import BaseService, ServiceError
from .bundle import ServiceBundle, get_service_bundle
from .storage_service import (
    InvalidStorageRequestError,
    ListingPage,
    ListingQuery,
    MetadataFilterReport,
    ObjectContent,
    PartialRenameError,
    StorageBrowserService,
    UploadFile,
    UploadResult,
)
from .user_service import (
    CreatedUser,
    InvalidUserOperationError,
    RegistrationData,
    RegistrationError,
    UserCreateData,
    UsernameTakenError,
    UserService,
)

__all__ = [
    "BaseService",
    "ServiceError",
    "ServiceBundle",
    "get_service_bundle",
    "StorageBrowserService",
    "ListingQuery",
    "ListingPage",
    "MetadataFilterReport",
    "ObjectContent",
    "UploadFile",
    "UploadResult",
    "InvalidStorageRequestError",
    "PartialRenameError",
    "UserService",
    "RegistrationData",
    "UserCreateData",
    "CreatedUser",
    "RegistrationError",
    "UsernameTakenError",
    "InvalidUserOperationError",
]
