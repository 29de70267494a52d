"""
Workflow errors.

Every business-rule failure of the TA application workflow is raised as a
WorkflowError subclass. Each class carries the HTTP status it maps to, so
routes don't translate them one by one: main.py installs a single exception
handler that renders {"error": message}.
"""


class WorkflowError(Exception):
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str = None, details=None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationFailed(WorkflowError):
    status_code = 400
    default_message = "Invalid request"


class InvalidRole(WorkflowError):
    status_code = 400
    default_message = "Only undergraduate or postgraduate students can apply for TA positions"


class DuplicateApplication(WorkflowError):
    status_code = 409
    default_message = "You have already applied for this module"


class InsufficientHours(WorkflowError):
    status_code = 400
    default_message = "Insufficient available hours to apply for this module"


class PositionsFilled(WorkflowError):
    status_code = 409
    default_message = "TA positions for this module are already filled"


class AlreadyProcessed(WorkflowError):
    status_code = 400
    default_message = "Application has already been processed"


class RemovalNeedsConfirmation(WorkflowError):
    status_code = 409
    default_message = "Reducing the TA count will remove recent applications"


class NotCoordinator(WorkflowError):
    status_code = 403
    default_message = "You are not a coordinator of this module"


class ApplicationNotFound(WorkflowError):
    status_code = 404
    default_message = "Application not found"


class ModuleNotFound(WorkflowError):
    status_code = 404
    default_message = "Module not found"


class UserNotFound(WorkflowError):
    status_code = 404
    default_message = "User not found"
