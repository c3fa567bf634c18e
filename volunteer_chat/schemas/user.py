from typing import Optional

from pydantic import BaseModel, Field

UNKNOWN_USER = "Unknown User"


def display_name_for(
    first_name: Optional[str],
    last_name: Optional[str],
    email: Optional[str],
) -> str:
    parts = [value.strip() for value in (first_name, last_name) if isinstance(value, str) and value.strip()]
    if parts:
        return " ".join(parts)
    if isinstance(email, str) and email.strip():
        return email.strip()
    return UNKNOWN_USER


class Actor(BaseModel):
    """The authenticated user a chat session acts on behalf of."""

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")

    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
    }

    @property
    def display_name(self) -> str:
        return display_name_for(self.first_name, self.last_name, self.email)
