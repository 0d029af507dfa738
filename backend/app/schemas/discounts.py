from pydantic import BaseModel, ConfigDict, Field


class CustomerRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str | None = None
    email: str | None = None
    first_name: str | None = None


class WelcomeCodeRequest(BaseModel):
    """Either the Flow shape ``{"customer": {...}}`` or a bare customer webhook body."""

    model_config = ConfigDict(extra="ignore")

    customer: CustomerRef | None = None
    id: int | str | None = None
    email: str | None = None
    first_name: str | None = None

    def customer_ref(self) -> CustomerRef | None:
        if self.customer is not None:
            return self.customer
        if self.id is not None:
            return CustomerRef(id=self.id, email=self.email, first_name=self.first_name)
        return None


class WelcomeCodeResponse(BaseModel):
    success: bool = True
    code: str = Field(min_length=1)
    reused: bool
