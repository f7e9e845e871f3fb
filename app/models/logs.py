"""
OBD Log Models — command logs posted by the OBD reader app.

Older app builds send different field names for the same values
(parseResponseData, response, p_id, userId, command.source); each field
accepts every known spelling and to_row() writes the logs table columns.
"""

import json
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ObdCommand(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: Optional[str] = None
    parser: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("parser", "source"),
    )


class ObdLogEntry(BaseModel):
    """One OBD command exchange."""

    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    parse_response: Any = Field(
        default=None,
        validation_alias=AliasChoices("parse_response", "parseResponseData"),
    )
    raw_response: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("raw_response", "response"),
    )
    pid: Optional[Union[str, int]] = Field(
        default=None,
        validation_alias=AliasChoices("pid", "p_id"),
    )
    command: Optional[ObdCommand] = None
    vehicle: Optional[Any] = None
    user_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("user_id", "userId"),
    )

    def to_row(self) -> dict:
        """Row for the logs table; parse_response is stored as JSON text."""
        command = self.command or ObdCommand()
        return {
            "type": self.type,
            "parse_response": json.dumps(self.parse_response),
            "raw_response": self.raw_response,
            "pid": None if self.pid is None else str(self.pid),
            "key": command.key,
            "vehicle": self.vehicle,
            "parser": command.parser,
            "user_id": self.user_id,
        }


class LogsSubmitResponse(BaseModel):
    message: str = "Logs submitted successfully"
    data: list[dict]


class LogsListResponse(BaseModel):
    logs: list[dict]
    count: int
