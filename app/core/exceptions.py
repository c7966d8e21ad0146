class LeadEngineError(Exception):
    """Base class for all rule/workflow engine domain exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except LeadEngineError`` clause can catch any domain
    error.
    """

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


class DefinitionValidationError(LeadEngineError):
    """Raised when a rule or workflow definition is malformed."""

    def __init__(self, detail: str = "Invalid definition"):
        super().__init__(detail)


class UnsupportedOperationError(LeadEngineError):
    """Raised for an unknown operator, action type or step type."""

    def __init__(self, detail: str = "Unsupported operation"):
        super().__init__(detail)


class NotFoundError(LeadEngineError):
    """Raised when an id does not resolve to a stored record."""

    def __init__(self, detail: str = "Not found"):
        super().__init__(detail)


class RuleNotFoundError(NotFoundError):
    """Raised when a requested business rule does not exist."""

    def __init__(self, detail: str = "Business rule not found"):
        super().__init__(detail)


class WorkflowNotFoundError(NotFoundError):
    """Raised when a workflow does not exist or cannot be executed."""

    def __init__(self, detail: str = "Workflow not found"):
        super().__init__(detail)


class LeadNotFoundError(NotFoundError):
    """Raised when a requested lead does not exist."""

    def __init__(self, detail: str = "Lead not found"):
        super().__init__(detail)


class ExecutionNotFoundError(NotFoundError):
    """Raised when a workflow execution does not exist."""

    def __init__(self, detail: str = "Workflow execution not found"):
        super().__init__(detail)


class ExecutionError(LeadEngineError):
    """Raised when an action or step fails because of a downstream fault.

    The original cause (typically a ``SQLAlchemyError``) is chained via
    ``raise ... from``.
    """

    def __init__(self, detail: str = "Execution failed"):
        super().__init__(detail)
