from fastapi import APIRouter, Depends

from garment_recolor.api.deps import get_edit_client
from garment_recolor.edit.client import VariantEditClient
from garment_recolor.schemas import HealthResponse


router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health(client: VariantEditClient = Depends(get_edit_client)) -> HealthResponse:
    return HealthResponse(edit_adapter=client.adapter_name)
