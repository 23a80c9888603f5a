from fastapi import APIRouter, Depends, Query

from calcula.dependencies.auth import get_activity_logger
from calcula.services.activity_log import ActivityLogger, entry_to_dict

router = APIRouter()


@router.get("")
def recent_activity(
    limit: int = Query(20, ge=1, le=50),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    return {"activities": [entry_to_dict(entry) for entry in activity.recent(limit)]}
