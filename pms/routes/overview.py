from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.project_service import overview


router = APIRouter(prefix="/overview", tags=["overview"])


@router.get("")
def get_overview(db: Session = Depends(get_db)):
    return overview(db)
