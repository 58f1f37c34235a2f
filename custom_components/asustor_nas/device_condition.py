"""Provides device conditions for ASUSTOR NAS."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

import voluptuous as vol

from homeassistant.const import CONF_CONDITION, CONF_DEVICE_ID, CONF_DOMAIN, CONF_TYPE
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers import condition, device_registry as dr
from homeassistant.helpers.typing import ConfigType

from .const import DOMAIN
from .coordinator import AsustorCoordinator

_LOGGER = logging.getLogger(__name__)

CONF_PORT = "port"
CONDITION_LAN_PORT_CONNECTED = "lan_port_connected"
CONDITION_TYPES = {CONDITION_LAN_PORT_CONNECTED}

CONDITION_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_CONDITION): "device",
        vol.Required(CONF_DEVICE_ID): str,
        vol.Required(CONF_DOMAIN): vol.Equal(DOMAIN),
        vol.Required(CONF_TYPE): vol.In(CONDITION_TYPES),
        vol.Required(CONF_PORT): str,
    }
)


def is_interface_connected(interfaces: list[dict[str, Any]] | None, port: str) -> bool:
    """Return True if the named interface reports an active link."""
    for iface in interfaces or []:
        if iface.get("name", "").lower() == port.lower():
            return iface.get("connected") is True
    return False


def _get_coordinator(hass: HomeAssistant, device_id: str) -> AsustorCoordinator | None:
    """Find the coordinator of the config entry owning a device."""
    device = dr.async_get(hass).async_get(device_id)
    if device is None:
        return None

    domain_data = hass.data.get(DOMAIN, {})
    for entry_id in device.config_entries:
        entry_data = domain_data.get(entry_id)
        if isinstance(entry_data, dict) and "coordinator" in entry_data:
            return entry_data["coordinator"]
    return None


async def async_get_conditions(
    hass: HomeAssistant, device_id: str
) -> list[dict[str, Any]]:
    """List device conditions for ASUSTOR NAS devices."""
    if _get_coordinator(hass, device_id) is None:
        return []

    return [
        {
            CONF_CONDITION: "device",
            CONF_DEVICE_ID: device_id,
            CONF_DOMAIN: DOMAIN,
            CONF_TYPE: CONDITION_LAN_PORT_CONNECTED,
        }
    ]


@callback
def async_condition_from_config(
    hass: HomeAssistant, config: ConfigType
) -> condition.ConditionCheckerType:
    """Create a function to test a device condition."""
    device_id = config[CONF_DEVICE_ID]
    port = config[CONF_PORT]

    @callback
    def test_condition(
        hass: HomeAssistant, variables: Mapping[str, Any] | None = None
    ) -> bool:
        """Test if the selected LAN port is connected."""
        coordinator = _get_coordinator(hass, device_id)
        if coordinator is None or not coordinator.last_update_success:
            _LOGGER.debug("No current data for device %s, port %s", device_id, port)
            return False

        return is_interface_connected(
            (coordinator.data or {}).get("interfaces"), port
        )

    return test_condition


async def async_get_condition_capabilities(
    hass: HomeAssistant, config: ConfigType
) -> dict[str, vol.Schema]:
    """List condition capabilities."""
    coordinator = _get_coordinator(hass, config[CONF_DEVICE_ID])
    interfaces = (coordinator.data or {}).get("interfaces") if coordinator else None
    port_names = [iface["name"] for iface in interfaces or []]

    if not port_names:
        return {"extra_fields": vol.Schema({vol.Required(CONF_PORT): str})}

    return {
        "extra_fields": vol.Schema({vol.Required(CONF_PORT): vol.In(port_names)})
    }
