from __future__ import annotations

from schoolsync.core.errors import ExternalServiceError, InfraError, TransientExternalError


class RemoteStoreError(ExternalServiceError):
    code = "remote_error"


class RemoteConfigError(InfraError):
    code = "remote_not_configured"


class RemoteCredentialsError(RemoteConfigError):
    code = "remote_credentials"


class RemotePermissionError(RemoteStoreError):
    code = "remote_permission"


class RemoteNotFoundError(RemoteStoreError):
    code = "remote_not_found"


class RemoteRejectedError(RemoteStoreError):
    code = "remote_rejected"


class RemoteUnavailableError(TransientExternalError):
    code = "remote_unavailable"


class RemoteRateLimitError(TransientExternalError):
    code = "remote_rate_limited"
