from typing import Any, Optional

from pydantic import BaseModel


class ConfigurationPayload(BaseModel):
    configuration: Any = None


class ConfigurationResponse(BaseModel):
    type: str
    configuration: Optional[Any] = None
