"""
Service result envelope.

Domain rejections (missing reward, ineligible ticket, crashed ride...) are
returned as failed results with a ReasonCode, never raised.
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from core.reason_codes import ReasonCode

T = TypeVar("T")


@dataclass
class ServiceError:
    code: ReasonCode
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class ServiceResult(Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[ServiceError] = None

    @classmethod
    def ok(cls, data: T) -> "ServiceResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: ReasonCode, message: str, details: Optional[Dict[str, Any]] = None) -> "ServiceResult[T]":
        return cls(success=False, error=ServiceError(code=code, message=message, details=details))


__all__ = ["ServiceError", "ServiceResult"]
