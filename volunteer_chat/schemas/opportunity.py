from typing import List, Optional

from pydantic import BaseModel, Field


class OpportunityInfo(BaseModel):
    id: str
    title: str
    created_by: str = Field(alias="createdBy")

    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
    }


class ApplicationStatusUpdate(BaseModel):
    application_ids: List[str] = Field(alias="applicationIds", min_length=1)
    status: str

    model_config = {"populate_by_name": True}


class ApplicationStatusResult(BaseModel):
    status: str
    count: int
    room_id: Optional[str] = Field(default=None, alias="roomId")

    model_config = {"populate_by_name": True}
