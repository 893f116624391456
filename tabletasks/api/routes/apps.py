from fastapi import APIRouter, Depends

from tabletasks.api.dependencies import get_runtime
from tabletasks.core.runtime import Runtime

router = APIRouter(prefix="/api/v1/apps", tags=["apps"])


@router.get("")
def list_apps(runtime: Runtime = Depends(get_runtime)):
    return {"apps": [app.describe() for app in runtime.registry.list_apps()]}
