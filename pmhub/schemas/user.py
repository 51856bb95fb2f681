from typing import Optional

from pydantic import BaseModel, ConfigDict


class Identity(BaseModel):
    """Minimal authenticated-user record attached to a connection."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    name: str
    email: str
    avatar: Optional[str] = None
