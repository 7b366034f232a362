"""
Domain Exceptions

Every error carries a machine-readable code and the HTTP status the API
layer should answer with.
"""
from typing import Any, Dict, List, Optional


class PlantFlowError(Exception):
    """Base class for all PlantFlow errors"""

    code: str = "PLANTFLOW_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(PlantFlowError):
    """Malformed or inconsistent input; carries one entry per offending field"""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, errors: List[Dict[str, str]], message: Optional[str] = None):
        self.errors = errors
        super().__init__(
            message or "; ".join(e["message"] for e in errors),
            details=errors,
        )


class NotFoundError(PlantFlowError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} not found: {entity_id}",
            details={"entity": entity, "id": str(entity_id)},
        )


class ConflictError(PlantFlowError):
    """Current state does not allow the requested operation"""

    code = "CONFLICT"
    status_code = 409


class PersistenceError(PlantFlowError):
    """Commit or statement failure reported by the store"""

    code = "PERSISTENCE_ERROR"
    status_code = 500
