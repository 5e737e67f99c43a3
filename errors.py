"""
Error hierarchy shared by the blueprints

Route handlers and task rules raise these; app.py registers a single
handler that turns them into JSON responses.

    TaskFlowError
    ├── ValidationFailed      400
    ├── AuthenticationFailed  401
    ├── ForbiddenError        403
    ├── NotFoundError         404
    └── ConflictError         409
"""


class TaskFlowError(Exception):
    """Base error carrying the HTTP status and a machine-readable code"""

    status_code = 500
    error = 'internal_error'

    def __init__(self, message, details=None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self):
        body = {
            'error': self.error,
            'message': self.message,
            'status': self.status_code
        }
        if self.details:
            body['details'] = self.details
        return body

    def __repr__(self):
        return f"{self.__class__.__name__}({self.message!r})"


class ValidationFailed(TaskFlowError):
    status_code = 400
    error = 'validation_failed'

    def __init__(self, details, message='Validation failed'):
        super().__init__(message, details=details)


class AuthenticationFailed(TaskFlowError):
    status_code = 401
    error = 'invalid_credentials'


class ForbiddenError(TaskFlowError):
    status_code = 403
    error = 'forbidden'


class NotFoundError(TaskFlowError):
    status_code = 404
    error = 'not_found'

    @classmethod
    def for_resource(cls, resource, resource_id):
        return cls(f"{resource} with ID {resource_id} not found")


class ConflictError(TaskFlowError):
    status_code = 409
    error = 'conflict'
