"""Errors raised by the contract access layer."""


class HealthChainError(Exception):
    """Base class for every error raised by healthchain."""


class RpcError(HealthChainError):
    """The node or the contract could not serve a call."""

    def __init__(self, message, method=None, code=None):
        super().__init__(message)
        self.method = method
        self.code = code


class UserRejected(HealthChainError):
    """The wallet owner declined a signing or sending prompt."""


class DecodeMismatch(HealthChainError):
    """A contract tuple matches none of the known record layouts."""


class NotFound(HealthChainError):
    """The requested record does not exist or could not be read."""

    def __init__(self, kind, record_id):
        super().__init__(f"{getattr(kind, 'label', kind)} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class DocumentStoreError(HealthChainError):
    """The document store rejected an upload or a fetch."""
