"""Profile and scene records read from the profile store."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_PROPERTY_NAME = "House Lights"
DEFAULT_SCENE_BRIGHTNESS = 200


def default_device_state() -> dict[str, Any]:
    """State assumed before the bridge has reported anything."""
    return {"on": False, "bri": DEFAULT_SCENE_BRIGHTNESS}


@dataclass
class Profile:
    """A user's lighting installation as seen by the voice adapter."""

    user_id: str
    property_name: str = DEFAULT_PROPERTY_NAME
    device_id: Optional[str] = None
    last_known_state: dict[str, Any] = field(default_factory=default_device_state)

    @classmethod
    def from_item(cls, user_id: str, item: dict[str, Any]) -> "Profile":
        state = item.get("last_known_state")
        return cls(
            user_id=user_id,
            property_name=item.get("property_name") or DEFAULT_PROPERTY_NAME,
            device_id=item.get("device_id"),
            last_known_state=state if isinstance(state, dict) else default_device_state(),
        )

    @property
    def is_on(self) -> bool:
        return bool(self.last_known_state.get("on", False))

    @property
    def brightness(self) -> int:
        """Last known brightness on the device's 0-255 scale."""
        value = self.last_known_state.get("bri", self.last_known_state.get("brightness"))
        try:
            return max(0, min(255, int(value)))
        except (TypeError, ValueError):
            return DEFAULT_SCENE_BRIGHTNESS

    @property
    def online(self) -> bool:
        return self.last_known_state.get("online", True) is not False


@dataclass
class Scene:
    """A stored lighting scene.

    Scenes carry either a raw device payload or just a brightness and effect
    id from which a payload is synthesized.
    """

    id: str
    name: str
    type: str = "user"
    wled_payload: Any = None
    brightness: Optional[int] = None
    effect_id: Optional[int] = None

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Scene":
        payload = item.get("wled_payload")
        if payload is None:
            payload = item.get("wledPayload")
        effect_id = item.get("effect_id")
        if effect_id is None:
            effect_id = item.get("effectId")
        return cls(
            id=str(item["scene_id"] if "scene_id" in item else item["id"]),
            name=item.get("name", ""),
            type=item.get("type", "user"),
            wled_payload=payload,
            brightness=item.get("brightness"),
            effect_id=effect_id,
        )

    @property
    def is_system(self) -> bool:
        return self.type == "system"

    def to_payload(self) -> dict[str, Any]:
        """Build the device state payload that activates this scene.

        A stored payload is used as is (JSON strings are decoded). Anything
        unusable falls back to a payload built from brightness and effect id,
        with the effect applied to the single global segment.
        """
        stored = self.wled_payload
        if isinstance(stored, str):
            try:
                stored = json.loads(stored)
            except ValueError:
                logger.warning("Scene %s has an unparseable payload, synthesizing", self.id)
                stored = None

        if isinstance(stored, dict) and stored:
            return stored
        if stored is not None:
            logger.warning("Scene %s has a malformed payload, synthesizing", self.id)

        payload: dict[str, Any] = {"on": True, "bri": self._synthesized_brightness()}
        if self.effect_id is not None:
            try:
                payload["seg"] = [{"id": 0, "fx": int(self.effect_id)}]
            except (TypeError, ValueError):
                logger.warning("Scene %s has an invalid effect id %r", self.id, self.effect_id)
        return payload

    def _synthesized_brightness(self) -> int:
        if self.brightness is None:
            return DEFAULT_SCENE_BRIGHTNESS
        try:
            return max(0, min(255, int(self.brightness)))
        except (TypeError, ValueError):
            return DEFAULT_SCENE_BRIGHTNESS
