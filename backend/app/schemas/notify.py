from pydantic import BaseModel, ConfigDict, Field


class NotifyInterestRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    variant_id: int | str | None = Field(default=None, alias="variantId")
    email: str | None = Field(default=None, max_length=320)


class NotifyInterestResponse(BaseModel):
    success: bool = True
