"""Sensor platform for ASUSTOR NAS integration."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorEntityDescription,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import PERCENTAGE, EntityCategory
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.typing import StateType

from .const import DOMAIN
from .coordinator import AsustorCoordinator
from .device import AsustorNasDevice
from .models import ConnectivityState

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class AsustorSensorEntityDescription(SensorEntityDescription):
    """Describes ASUSTOR sensor entity."""

    data_key: str


SYSTEM_SENSORS: tuple[AsustorSensorEntityDescription, ...] = (
    AsustorSensorEntityDescription(
        key="cpu_usage",
        data_key="cpu_usage",
        translation_key="cpu_usage",
        native_unit_of_measurement=PERCENTAGE,
        state_class=SensorStateClass.MEASUREMENT,
        icon="mdi:chip",
    ),
    AsustorSensorEntityDescription(
        key="ram_usage",
        data_key="ram_usage",
        translation_key="ram_usage",
        native_unit_of_measurement=PERCENTAGE,
        state_class=SensorStateClass.MEASUREMENT,
        icon="mdi:memory",
    ),
    AsustorSensorEntityDescription(
        key="storage_used",
        data_key="storage_used",
        translation_key="storage_used",
        native_unit_of_measurement=PERCENTAGE,
        state_class=SensorStateClass.MEASUREMENT,
        icon="mdi:harddisk",
    ),
)

CONNECTIVITY_SENSOR = SensorEntityDescription(
    key="connectivity",
    translation_key="connectivity",
    device_class=SensorDeviceClass.ENUM,
    options=[state.value for state in ConnectivityState],
    entity_category=EntityCategory.DIAGNOSTIC,
    icon="mdi:lan-connect",
)


class AsustorSensor(SensorEntity):
    """Base class for ASUSTOR sensors."""

    _attr_has_entity_name = True

    def __init__(
        self,
        coordinator: AsustorCoordinator,
        device: AsustorNasDevice,
        description: SensorEntityDescription,
    ) -> None:
        """Initialize the sensor."""
        super().__init__()
        self.coordinator = coordinator
        self._device = device
        self.entity_description = description
        self._attr_unique_id = f"{device.cloud_id}_{description.key}"
        self._attr_device_info = device.device_info

    @callback
    def _handle_coordinator_update(self) -> None:
        """Handle updated data from the coordinator."""
        self.async_write_ha_state()

    async def async_added_to_hass(self) -> None:
        """When entity is added to hass."""
        self.async_on_remove(
            self.coordinator.async_add_listener(self._handle_coordinator_update)
        )


class AsustorSystemSensor(AsustorSensor):
    """Representation of a NAS statistics sensor."""

    entity_description: AsustorSensorEntityDescription

    @property
    def available(self) -> bool:
        """Return True if the last poll succeeded and the NAS is reachable."""
        return (
            self.coordinator.last_update_success
            and self.coordinator.connection.state.available
        )

    @property
    def native_value(self) -> StateType:
        """Return the state of the sensor."""
        if not self.coordinator.data:
            return None
        return self.coordinator.data.get(self.entity_description.data_key)


class AsustorConnectivitySensor(AsustorSensor):
    """Connectivity state of the NAS with the reason it is unavailable."""

    @property
    def native_value(self) -> StateType:
        """Return the connectivity state."""
        return self.coordinator.connection.state.state.value

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the unavailability reason and the working address."""
        connection = self.coordinator.connection
        return {
            "reason": connection.state.reason,
            "url": connection.url,
        }

    async def async_added_to_hass(self) -> None:
        """Follow connectivity transitions in addition to coordinator updates."""
        await super().async_added_to_hass()

        @callback
        def _state_changed(state: ConnectivityState, reason: str | None) -> None:
            self.async_write_ha_state()

        self.async_on_remove(
            self.coordinator.connection.state.add_listener(_state_changed)
        )


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up sensors from a config entry."""
    coordinator = hass.data[DOMAIN][config_entry.entry_id]["coordinator"]
    device = hass.data[DOMAIN][config_entry.entry_id]["device"]

    entities: list[AsustorSensor] = [
        AsustorSystemSensor(coordinator, device, description)
        for description in SYSTEM_SENSORS
    ]
    entities.append(AsustorConnectivitySensor(coordinator, device, CONNECTIVITY_SENSOR))

    async_add_entities(entities)
