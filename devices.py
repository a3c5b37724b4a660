"""Device endpoints proxied to MyQ.

Mounted behind BearerAuthMiddleware and ExternalSessionMiddleware, so every
handler finds a logged in MyQ session on request.state.myq_account. Results
are returned exactly as MyQ reported them.
"""

import logging

from fastapi import APIRouter, Request

from myq_client import MyQ
from oauth.endpoints import read_params

logger = logging.getLogger(__name__)

router = APIRouter(tags=["devices"])

# GDO, Light, Gate, VGDO Garage Door, WGDO Garage Door
DEVICE_TYPE_IDS = [2, 3, 5, 7, 17]


def get_account(request: Request) -> MyQ:
    return request.state.myq_account


@router.get("/devices")
async def list_devices(request: Request):
    result = await get_account(request).get_devices(DEVICE_TYPE_IDS)
    logger.info(f"[DEVICES] GET devices: {result}")
    return result


@router.get("/door/state")
async def get_door_state(request: Request):
    device_id = request.query_params.get("id")
    result = await get_account(request).get_door_state(device_id)
    logger.info(f"[DEVICES] GET door state: {result}")
    return result


@router.put("/door/state")
async def set_door_state(request: Request):
    body = await read_params(request)
    result = await get_account(request).set_door_state(body.get("id"), body.get("state"))
    logger.info(f"[DEVICES] PUT door state: {result}")
    return result


@router.get("/light/state")
async def get_light_state(request: Request):
    # Setter with no state, not a read of the light attribute.
    device_id = request.query_params.get("id")
    result = await get_account(request).set_light_state(device_id)
    logger.info(f"[DEVICES] GET light state: {result}")
    return result


@router.put("/light/state")
async def set_light_state(request: Request):
    body = await read_params(request)
    result = await get_account(request).set_light_state(body.get("id"), body.get("state"))
    logger.info(f"[DEVICES] PUT light state: {result}")
    return result
