from fastapi import APIRouter, Body, Depends

from calcula.dependencies.auth import AuthenticatedUser, get_activity_logger, get_current_user
from calcula.schemas.configuration import ConfigurationPayload, ConfigurationResponse
from calcula.services.activity_log import ActivityLogger
from calcula.services.user_configurations import ConfigurationStore, get_configuration_store

router = APIRouter()


@router.get("/{config_type}", response_model=ConfigurationResponse)
async def load_configuration(
    config_type: str,
    user: AuthenticatedUser = Depends(get_current_user),
    store: ConfigurationStore = Depends(get_configuration_store),
):
    return ConfigurationResponse(type=config_type, configuration=await store.load(user.id, config_type))


@router.put("/{config_type}")
async def save_configuration(
    config_type: str,
    request: ConfigurationPayload = Body(...),
    user: AuthenticatedUser = Depends(get_current_user),
    store: ConfigurationStore = Depends(get_configuration_store),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    """Saves for the same (user, type) are applied one at a time, in arrival order."""
    saved = await store.save(user.id, config_type, request.configuration)
    activity.log("update_configuration", table_name="user_configurations", record_id=saved["id"], value=config_type)
    return {"success": True, "configuration": saved}


@router.delete("/{config_type}")
async def delete_configuration(
    config_type: str,
    user: AuthenticatedUser = Depends(get_current_user),
    store: ConfigurationStore = Depends(get_configuration_store),
):
    return {"success": await store.delete(user.id, config_type)}
