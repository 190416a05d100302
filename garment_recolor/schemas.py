from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    edit_adapter: str


class RecolorVariantsResponse(BaseModel):
    count: int
    width: int
    height: int
    variants: list[str] = Field(description="base64-encoded PNG images")
