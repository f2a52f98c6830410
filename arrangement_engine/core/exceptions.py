"""
Custom exception classes for the Arrangement Engine.

Every error is raised before the arrangement is touched, so callers never
receive a partially-mutated object.
"""
from typing import Optional, Any, Dict
import uuid


class ArrangementEngineError(Exception):
    """Base exception for engine errors."""

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        correlation_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.error_code = error_code
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for the calling layer."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.detail,
            "correlation_id": self.correlation_id,
            "context": self.context,
        }


class ValidationError(ArrangementEngineError, ValueError):
    """Invalid input such as a non-numeric or non-positive amount."""

    def __init__(
        self,
        detail: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **context
    ):
        error_code = "ARR_001"
        if field:
            error_code = f"ARR_001_{field.upper()}"
            detail = f"Validation failed for field '{field}': {detail}"

        self.field = field
        self.value = value
        context_dict = {"field": field, "value": value, **context}

        super().__init__(detail=detail, error_code=error_code, context=context_dict)


class BusinessRuleError(ArrangementEngineError):
    """Exception for business rule violations."""

    def __init__(
        self,
        detail: str,
        rule_name: Optional[str] = None,
        entity_id: Optional[str] = None,
        **context
    ):
        error_code = "ARR_002"
        if rule_name:
            error_code = f"ARR_002_{rule_name.upper()}"
            detail = f"Business rule '{rule_name}' violated: {detail}"

        self.rule_name = rule_name
        context_dict = {"rule_name": rule_name, "entity_id": entity_id, **context}

        super().__init__(detail=detail, error_code=error_code, context=context_dict)


class InconsistentStateError(ArrangementEngineError):
    """Ledger and arrangement disagree, e.g. payments exceed the total owed."""

    def __init__(self, detail: str, arrangement_id: Optional[str] = None, **context):
        self.arrangement_id = arrangement_id
        context_dict = {"arrangement_id": arrangement_id, **context}

        super().__init__(detail=detail, error_code="ARR_003", context=context_dict)


class InvalidTransitionError(ArrangementEngineError):
    """An action or status change is not allowed from the current status."""

    def __init__(
        self,
        current_status: str,
        target_status: Optional[str] = None,
        action: Optional[str] = None,
        arrangement_id: Optional[str] = None,
        **context
    ):
        self.current_status = current_status
        self.target_status = target_status
        self.action = action
        self.arrangement_id = arrangement_id

        if action:
            detail = f"Cannot apply '{action}' to an arrangement in status '{current_status}'"
        else:
            detail = f"Cannot move arrangement from '{current_status}' to '{target_status}'"

        context_dict = {
            "current_status": current_status,
            "target_status": target_status,
            "action": action,
            "arrangement_id": arrangement_id,
            **context
        }

        super().__init__(detail=detail, error_code="ARR_004", context=context_dict)


class CollaboratorFailure(ArrangementEngineError):
    """
    An external collaborator call failed.

    The in-memory computation already succeeded; ``result`` holds it so the
    caller can decide whether to retry the call or discard the new state.
    """

    def __init__(
        self,
        collaborator: str,
        message: str,
        result: Optional[Any] = None,
        **context
    ):
        self.collaborator = collaborator
        self.result = result
        context_dict = {"collaborator": collaborator, **context}

        super().__init__(
            detail=f"[{collaborator}] {message}",
            error_code="ARR_005",
            context=context_dict,
        )


def get_user_friendly_error_message(error_code: str) -> str:
    """Get user-friendly error message for error code."""
    error_messages = {
        "ARR_001": "Validation failed. Please check the amounts and details entered.",
        "ARR_002": "This action is not allowed for this arrangement.",
        "ARR_003": "The arrangement's payment records are inconsistent.",
        "ARR_004": "This arrangement can no longer be changed this way.",
        "ARR_005": "The change was calculated but could not be saved or reported. Please try again.",
    }
    base_code = "_".join(error_code.split("_")[:2]) if error_code else ""
    return error_messages.get(base_code, "An error occurred. Please try again.")
