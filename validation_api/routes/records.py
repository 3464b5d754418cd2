"""
API routes for records awaiting validation.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from validation_api.database import get_db
from validation_api.models import CreateRecordRequest, RecordResponse
from validation_api.record_store import RecordStore


router = APIRouter(prefix="/records", tags=["Records"])


@router.post("/", response_model=RecordResponse, status_code=201)
def create_record(
    request: CreateRecordRequest,
    db: Session = Depends(get_db)
) -> RecordResponse:
    """Add a record to the validation pool."""
    record = RecordStore(db).create(request.data_1, request.data_2)
    return RecordResponse.model_validate(record)


@router.get("/next", response_model=RecordResponse)
def get_next_record(db: Session = Depends(get_db)) -> RecordResponse:
    """Get a random pending record to vote on."""
    record = RecordStore(db).next_pending()
    if not record:
        raise HTTPException(status_code=404, detail="No records found.")

    return RecordResponse.model_validate(record)


@router.get("/{record_id}", response_model=RecordResponse)
def get_record(record_id: int, db: Session = Depends(get_db)) -> RecordResponse:
    record = RecordStore(db).get(record_id)
    if not record:
        raise HTTPException(status_code=404, detail="Record not found")

    return RecordResponse.model_validate(record)
