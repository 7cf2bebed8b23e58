"""
Equipment and profile management for PHD2.

PHD2 keeps named equipment profiles (camera, mount, AO, rotator). This
service lists them, switches between them, and normalizes the several
shapes PHD2 versions use for profile and equipment answers.
"""

import json
from typing import Any, Dict, List

from py2phd2.core.errors import PHD2Error, ValidationError
from py2phd2.services.guider_command_service import GuiderCommandService


class EquipmentService(GuiderCommandService):
    """Profile selection and equipment connection."""

    def get_profiles(self) -> List[str]:
        """Names of all equipment profiles."""
        profiles = self._query("get_profiles", list, default=[])
        return [str(p.get("name", "")) for p in profiles if isinstance(p, dict)]

    def _profile_id(self, profile_name: str) -> int:
        profiles = self._query("get_profiles", list, default=[])
        for profile in profiles:
            if isinstance(profile, dict) and profile.get("name") == profile_name:
                return int(profile["id"])
        raise ValidationError(
            f"Invalid PHD2 profile name: {profile_name}",
            field_name="profile_name"
        )

    def connect_equipment(self, profile_name: str) -> None:
        """
        Select a profile and connect its equipment.

        Capture is stopped and equipment disconnected first, since PHD2
        refuses to switch profiles while devices are connected.

        Raises:
            ValidationError: If no profile has that name
        """
        profile_id = self._profile_id(profile_name)

        self.client.stop_capture()
        self._send("set_connected", False)
        self._send("set_profile", profile_id)
        self._send("set_connected", True)
        self.logger.info(f"Connected equipment for profile '{profile_name}' (id {profile_id})")

    def disconnect_equipment(self) -> None:
        self.client.stop_capture()
        self._send("set_connected", False)
        self.logger.info("Disconnected PHD2 equipment")

    def set_connected(self, connected: bool) -> None:
        self._require_type(connected, bool, "connected")
        self._send("set_connected", connected)

    def get_connected(self) -> bool:
        return self._query("get_connected", bool, default=False)

    def set_profile(self, profile_id: int) -> None:
        self._require_type(profile_id, int, "profile_id")
        self._send("set_profile", profile_id)

    def get_profile(self) -> Dict[str, Any]:
        """
        Current profile as ``{"id": int, "name": str}``.

        PHD2 answers with an object, a JSON string, or a bare profile name
        depending on version; a bare name yields ``{"name": ...}`` only.
        """
        result = self._query("get_profile", lambda value: value, default="")

        if isinstance(result, str):
            try:
                parsed = json.loads(result)
            except ValueError:
                return {"name": result}
            if isinstance(parsed, dict):
                result = parsed
            else:
                return {"name": result}

        if isinstance(result, dict):
            return {
                "id": int(result.get("id") or 0),
                "name": str(result.get("name") or ""),
            }

        return {"name": str(result)}

    def get_current_equipment(self) -> Dict[str, Dict[str, Any]]:
        """
        Devices of the current profile, keyed by lower-case device type.

        Each entry is ``{"name": str, "connected": bool}``. Both the object
        format and the legacy ``[[type, name], ...]`` format are accepted.
        On a PHD2 error an empty dict is returned so status pages keep
        rendering.
        """
        try:
            self.client.check_connected()
            result = self.client.call("get_current_equipment")
        except PHD2Error as e:
            self.logger.warning(f"Could not read PHD2 equipment: {e.message}")
            return {}

        equipment: Dict[str, Dict[str, Any]] = {}

        if isinstance(result, dict):
            for device_type, info in result.items():
                key = str(device_type).lower()
                if isinstance(info, dict):
                    name = str(info["name"]) if info.get("name") is not None else ""
                    if info.get("connected") is not None:
                        connected = bool(info["connected"])
                    else:
                        connected = bool(name)
                    equipment[key] = {"name": name, "connected": connected}
                else:
                    name = "" if info is None else str(info)
                    equipment[key] = {"name": name, "connected": bool(name)}

        elif isinstance(result, list):
            for item in result:
                if isinstance(item, list) and len(item) >= 2:
                    name = "" if item[1] is None else str(item[1])
                    equipment[str(item[0]).lower()] = {"name": name, "connected": bool(name)}

        else:
            self.logger.debug(f"Unknown equipment format: {type(result).__name__}")

        return equipment
