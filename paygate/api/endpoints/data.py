# paygate/api/endpoints/data.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from paygate.api.models.data import DataResponse, DataPayload

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/data",
    response_model=DataResponse,
    summary="Retrieve protected data",
)
async def get_data():
    """
    Return the protected payload.

    Only reached after the x402 middleware has verified and settled a payment
    for this request.
    """
    logger.info("Serving protected data")
    return DataResponse(
        success=True,
        message="Data retrieved successfully",
        data=DataPayload(
            timestamp=datetime.now(timezone.utc).isoformat(),
            info="This is protected data behind a paywall",
        ),
    )
