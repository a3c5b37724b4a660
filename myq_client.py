"""Async client for the MyQ (Chamberlain / LiftMaster) v4 REST API.

Every operation returns a plain result dict with a ``returnCode``; zero means
success and any other value comes with an ``error`` message. Ordinary
failures (bad credentials, unknown device, provider downtime) are reported
this way and never raised.
"""

import logging
from typing import Any, Optional

import httpx

from config import DEFAULT_MYQ_APP_ID, DEFAULT_MYQ_BASE_URL

logger = logging.getLogger(__name__)

USER_AGENT = "Chamberlain/3773 (iPhone; iOS 11.0.3; Scale/2.00)"

ERRORS = {
    11: "Something unexpected happened. Please wait a bit and try again.",
    12: "MyQ service is currently down. Please wait a bit and try again.",
    13: "Not logged in.",
    14: "Email and/or password are incorrect.",
    15: "Invalid parameter(s) provided.",
    16: "User will be locked out due to too many tries. 1 try left.",
    17: "User is locked out due to too many tries. Please reset password and try again.",
    18: "Could not find a device with the provided id.",
    19: "Device type is not supported by this operation.",
}

# MyQ login ReturnCode -> local error code
LOGIN_ERRORS = {
    "203": 14,
    "205": 16,
    "207": 17,
}
SESSION_EXPIRED = "-3333"

DEVICE_TYPES = {
    1: "Gateway",
    2: "GDO",
    3: "Light",
    5: "Gate",
    7: "VGDO Garage Door",
    9: "Commercial Door Operator (CDO)",
    13: "Camera",
    15: "WGDO Gateway AC",
    16: "WGDO Gateway DC",
    17: "WGDO Garage Door",
}

DOOR_STATES = {
    1: "open",
    2: "closed",
    3: "stopped",
    4: "opening",
    5: "closing",
    8: "moving",
    9: "open",
}

LIGHT_STATES = {
    0: "off",
    1: "on",
}


def error_result(code: int) -> dict:
    return {"returnCode": code, "error": ERRORS[code]}


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _attributes(device: dict) -> dict:
    return {
        attribute.get("AttributeDisplayName"): attribute.get("Value")
        for attribute in device.get("Attributes") or []
    }


def parse_device(device: dict) -> dict:
    """Flatten a MyQ device record into the shape returned to API callers."""
    attributes = _attributes(device)
    type_id = device.get("MyQDeviceTypeId")
    result = {
        "id": device.get("MyQDeviceId"),
        "typeId": type_id,
        "typeName": DEVICE_TYPES.get(type_id, device.get("MyQDeviceTypeName")),
        "serialNumber": device.get("SerialNumber"),
        "online": attributes.get("online") == "True",
        "name": attributes.get("desc"),
    }
    door_state = _as_int(attributes.get("doorstate"))
    if door_state is not None:
        result["doorState"] = door_state
        result["doorStateDescription"] = DOOR_STATES.get(door_state)
    light_state = _as_int(attributes.get("lightstate"))
    if light_state is not None:
        result["lightState"] = light_state
        result["lightStateDescription"] = LIGHT_STATES.get(light_state)
    return result


class MyQ:
    """One MyQ account session.

    Construct with the account credentials, call ``login()`` (or ``resume()``
    with a previously issued security token), then use the device operations.
    """

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        base_url: str = DEFAULT_MYQ_BASE_URL,
        app_id: str = DEFAULT_MYQ_APP_ID,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.username = username
        self.password = password
        self.base_url = base_url
        self.app_id = app_id
        self.timeout = timeout
        self.transport = transport
        self.security_token: Optional[str] = None

    def _headers(self) -> dict:
        headers = {
            "MyQApplicationId": self.app_id,
            "User-Agent": USER_AGENT,
        }
        if self.security_token:
            headers["SecurityToken"] = self.security_token
        return headers

    async def _call(self, method: str, path: str, **kwargs) -> dict:
        """Send one request; transport and decoding failures become result dicts."""
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"[MYQ] {method} {path} failed: {e}")
            return error_result(12)

        if response.status_code >= 500:
            logger.warning(f"[MYQ] {method} {path} returned {response.status_code}")
            return error_result(12)
        try:
            body = response.json()
        except ValueError:
            logger.warning(f"[MYQ] {method} {path} returned a non-JSON body")
            return error_result(11)
        if not isinstance(body, dict):
            return error_result(11)
        return body

    def _check_session(self) -> Optional[dict]:
        if not self.security_token:
            return error_result(13)
        return None

    @staticmethod
    def _failure(body: dict) -> Optional[dict]:
        """Map a non-success MyQ body to a result, or None if it succeeded."""
        if "returnCode" in body:
            return body
        return_code = str(body.get("ReturnCode"))
        if return_code == "0":
            return None
        if return_code == SESSION_EXPIRED:
            return error_result(13)
        logger.info(f"[MYQ] Unexpected ReturnCode {return_code}: {body.get('ErrorMessage')}")
        return error_result(11)

    # ============== Session ==============

    async def login(self) -> dict:
        """Validate the credentials and keep the issued security token."""
        if not self.username or not self.password:
            return error_result(14)

        body = await self._call(
            "POST",
            "/api/v4/User/Validate",
            json={"username": self.username, "password": self.password},
        )
        if "returnCode" in body:
            return body

        return_code = str(body.get("ReturnCode"))
        if return_code in LOGIN_ERRORS:
            return error_result(LOGIN_ERRORS[return_code])
        if return_code != "0" or not body.get("SecurityToken"):
            logger.info(f"[MYQ] Login failed with ReturnCode {return_code}")
            return error_result(11)

        self.security_token = body["SecurityToken"]
        return {"returnCode": 0, "token": self.security_token}

    def resume(self, security_token: Optional[str]) -> dict:
        """Adopt a security token issued by an earlier login."""
        if not security_token:
            return error_result(13)
        self.security_token = security_token
        return {"returnCode": 0, "token": security_token}

    # ============== Devices ==============

    async def get_devices(self, type_ids: list[int]) -> dict:
        """List the account's devices whose type is in type_ids."""
        failure = self._check_session()
        if failure:
            return failure
        if not type_ids or any(_as_int(type_id) not in DEVICE_TYPES for type_id in type_ids):
            return error_result(15)
        wanted = {_as_int(type_id) for type_id in type_ids}

        body = await self._call("GET", "/api/v4/UserDeviceDetails/Get")
        failure = self._failure(body)
        if failure:
            return failure

        devices = [
            parse_device(device)
            for device in body.get("Devices") or []
            if device.get("MyQDeviceTypeId") in wanted
        ]
        return {"returnCode": 0, "devices": devices}

    async def _get_attribute(self, device_id: Any, attribute: str) -> dict:
        failure = self._check_session()
        if failure:
            return failure
        device_id = _as_int(device_id)
        if device_id is None:
            return error_result(15)

        body = await self._call(
            "GET",
            "/api/v4/DeviceAttribute/GetDeviceAttribute",
            params={"MyQDeviceId": device_id, "AttributeName": attribute},
        )
        failure = self._failure(body)
        if failure:
            return failure
        value = _as_int(body.get("AttributeValue"))
        if value is None:
            return error_result(18)
        return {"returnCode": 0, "value": value}

    async def _put_attribute(self, device_id: Any, attribute: str, value: Any, allowed: dict) -> dict:
        failure = self._check_session()
        if failure:
            return failure
        device_id = _as_int(device_id)
        value = _as_int(value)
        if device_id is None or value not in allowed:
            return error_result(15)

        body = await self._call(
            "PUT",
            "/api/v4/DeviceAttribute/PutDeviceAttribute",
            json={"MyQDeviceId": device_id, "AttributeName": attribute, "AttributeValue": value},
        )
        failure = self._failure(body)
        if failure:
            return failure
        return {"returnCode": 0}

    async def get_door_state(self, device_id: Any) -> dict:
        result = await self._get_attribute(device_id, "doorstate")
        if result["returnCode"] != 0:
            return result
        state = result["value"]
        return {"returnCode": 0, "doorState": state, "doorStateDescription": DOOR_STATES.get(state)}

    async def set_door_state(self, device_id: Any, state: Any) -> dict:
        """Close (0) or open (1) a door."""
        return await self._put_attribute(device_id, "desireddoorstate", state, {0: "close", 1: "open"})

    async def set_light_state(self, device_id: Any, state: Any = None) -> dict:
        """Turn a light off (0) or on (1). A missing state is an invalid parameter."""
        return await self._put_attribute(device_id, "desiredlightstate", state, LIGHT_STATES)
