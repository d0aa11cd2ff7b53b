from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from busybot.database import get_db
from busybot.logging_config import get_logger
from busybot.schemas.train import TrainRequest, TrainResponse
from busybot.services.training_service import train_personality

logger = get_logger("train")

router = APIRouter()

ERROR_STATUS = {
    "missing_credential": 400,
    "insufficient_data": 400,
    "persistence_error": 500,
}


@router.post("/train", response_model=TrainResponse, responses={400: {}, 500: {}})
def train(request: TrainRequest, db: Session = Depends(get_db)):
    """Re-learn a tenant's style. Re-running replaces the previous learned style."""
    result = train_personality(db, request.tenant_id)
    if not result.ok:
        logger.info(f"Training rejected for {request.tenant_id}: {result.error_code}")
        return JSONResponse(status_code=ERROR_STATUS.get(result.error_code, 500), content=result.to_error_body())
    return result.value.to_dict()
