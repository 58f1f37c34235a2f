"""Device definitions for ASUSTOR NAS."""

from homeassistant.core import HomeAssistant
from homeassistant.helpers import device_registry as dr
from homeassistant.helpers.device_registry import DeviceInfo

from .connectivity import NasConnection
from .const import DOMAIN, MANUFACTURER


class AsustorNasDevice:
    """ASUSTOR NAS device."""

    def __init__(
        self,
        hass: HomeAssistant,
        name: str,
        cloud_id: str,
        connection: NasConnection,
    ) -> None:
        """Initialize the device."""
        self.hass = hass
        self.name = name
        self.cloud_id = cloud_id
        self.connection = connection
        self.configuration_url: str | None = connection.url

    def set_configuration_url(self, url: str | None) -> None:
        """Point the device page at the current working address."""
        if not url or url == self.configuration_url:
            return
        self.configuration_url = url

        # Update device registry information
        device_registry = dr.async_get(self.hass)
        existing_device = device_registry.async_get_device(
            identifiers={(DOMAIN, self.cloud_id)}
        )
        if existing_device:
            device_registry.async_update_device(
                existing_device.id, configuration_url=url
            )

    @property
    def device_info(self) -> DeviceInfo:
        """Return device information."""
        return DeviceInfo(
            identifiers={(DOMAIN, self.cloud_id)},
            name=self.name,
            manufacturer=MANUFACTURER,
            model="ADM NAS",
            configuration_url=self.configuration_url,
        )
