# oficina/core/errors.py
from __future__ import annotations

from typing import Dict, Optional


class ServiceError(Exception):
    """Erro de regra de negócio com mensagem pronta para exibir ao usuário."""

    status_code = 400
    code = "error"

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.fields = fields or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.fields:
            payload["fields"] = self.fields
        return payload


class ValidationError(ServiceError):
    status_code = 400
    code = "validation"


class BusinessRuleError(ServiceError):
    status_code = 400
    code = "bad_request"


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"


class ConflictError(ServiceError):
    status_code = 409
    code = "conflict"


class UnauthorizedError(ServiceError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(ServiceError):
    status_code = 403
    code = "forbidden"


class InfrastructureError(ServiceError):
    status_code = 500
    code = "internal"
