from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PushMessageIn(BaseModel):
    user_id: Optional[str] = Field(None, alias="userId")
    title: Optional[str] = ""
    body: Optional[str] = ""
    url: Optional[str] = "/"

    model_config = ConfigDict(populate_by_name=True)
