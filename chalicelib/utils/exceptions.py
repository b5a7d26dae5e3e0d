__all__ = ["NotAuthorizedException", "InvalidRequest", "RecordNotFound", "NumberOfRetriesExceeded", "NotFound",
           "RemoteAPIError", "OrderSubmissionFailed", "ReorderUnavailable"]


class NotAuthorizedException(Exception):
    LEVEL = 'warning'


# Precondition exceptions
class InvalidRequest(Exception):
    LEVEL = 'warning'


# DynamoDB exceptions
class RecordNotFound(Exception):
    LEVEL = 'info'


# DB Performance Exception
class NumberOfRetriesExceeded(Exception):
    pass


# Remote API exceptions
class NotFound(Exception):
    LEVEL = 'info'


class RemoteAPIError(Exception):
    LEVEL = 'error'

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


# Order lifecycle exceptions
class OrderSubmissionFailed(Exception):
    LEVEL = 'error'

    def __init__(self, message, cause=None):
        super().__init__(message)
        self.cause = cause


class ReorderUnavailable(Exception):
    LEVEL = 'warning'
