"""
Pydantic schemas for the eWay-CRM backend wire format.

Every backend response is an HTTP 200 carrying an application-level
``ReturnCode``; the transport status says nothing about logical success.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ReturnCode(str, Enum):
    """Known application-level result codes."""

    SUCCESS = "rcSuccess"
    BAD_SESSION = "rcBadSession"
    BAD_ACCESS_TOKEN = "rcBadAccessToken"
    ERROR = "rcError"
    VALIDATION_ERROR = "rcValidationError"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ReturnCode":
        """Map a wire value to a known code, ``UNKNOWN`` for anything else."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


AUTH_FAILURE_CODES = frozenset({ReturnCode.BAD_SESSION, ReturnCode.BAD_ACCESS_TOKEN})


class EwayApiResult(BaseModel):
    """Result of a backend method call. Unknown fields are preserved."""

    return_code: Optional[str] = Field(
        default=None,
        alias="ReturnCode",
        description="Application-level result code",
        examples=["rcSuccess", "rcBadSession"],
    )
    description: Optional[str] = Field(
        default=None,
        alias="Description",
        description="Human readable result description",
    )
    data: Any = Field(
        default=None, alias="Data", description="Returned items, usually a list"
    )
    total_count: Any = Field(
        default=None,
        alias="TotalCount",
        description="Total number of matching items",
    )
    error_message: Optional[str] = Field(default=None, alias="ErrorMessage")
    guid: Optional[str] = Field(
        default=None,
        alias="Guid",
        description="Identifier of a saved item (save methods)",
    )
    is_user_message_optional_error: Optional[bool] = Field(
        default=None, alias="IsUserMessageOptionalError"
    )
    user_message: Optional[str] = Field(default=None, alias="UserMessage")
    session_id: Optional[str] = Field(
        default=None,
        alias="SessionId",
        description="Session identifier returned by LogIn",
    )

    class Config:
        extra = "allow"
        populate_by_name = True

    @property
    def code(self) -> ReturnCode:
        return ReturnCode.parse(self.return_code)

    @property
    def is_success(self) -> bool:
        return self.code is ReturnCode.SUCCESS

    @property
    def is_auth_failure(self) -> bool:
        """True for the two codes the session layer handles itself."""
        return self.code in AUTH_FAILURE_CODES

    def raw(self) -> Dict[str, Any]:
        """Return the response with its wire field names, as received."""
        return self.model_dump(by_alias=True, exclude_unset=True)
