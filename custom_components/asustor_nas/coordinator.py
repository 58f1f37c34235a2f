"""Data update coordinator for ASUSTOR NAS devices."""

from datetime import timedelta
import logging
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .connectivity import NasConnection
from .const import COORDINATOR_UPDATE_INTERVAL, DOMAIN, REASON_INVALID_CREDENTIALS
from .error import (
    AddressBlockedError,
    AddressUnreachableError,
    AsustorError,
    InvalidCredentialsError,
    TerminalAuthError,
)

_LOGGER = logging.getLogger(__name__)


class AsustorCoordinator(DataUpdateCoordinator[dict[str, Any]]):
    """Class to manage fetching statistics from an ASUSTOR NAS."""

    def __init__(
        self, hass: HomeAssistant, entry: ConfigEntry, connection: NasConnection
    ) -> None:
        """Initialize the coordinator.

        Args:
            hass: Home Assistant instance
            entry: Configuration entry of the NAS
            connection: Connection record resolving address and session

        """
        super().__init__(
            hass,
            _LOGGER,
            config_entry=entry,
            name=f"{DOMAIN}_{connection.cloud_id}",
            update_interval=timedelta(seconds=COORDINATOR_UPDATE_INTERVAL),
        )
        self.connection = connection

    async def _async_update_data(self) -> dict[str, Any]:
        """Fetch statistics through the session manager.

        Returns:
            dict: CPU, RAM, storage and network interface metrics

        """
        try:
            return await self.connection.async_call(
                self.connection.api.get_system_metrics
            )
        except InvalidCredentialsError as err:
            raise ConfigEntryAuthFailed(REASON_INVALID_CREDENTIALS) from err
        except TerminalAuthError as err:
            if isinstance(err.__cause__, InvalidCredentialsError):
                raise ConfigEntryAuthFailed(REASON_INVALID_CREDENTIALS) from err
            raise UpdateFailed(f"Session could not be restored: {err}") from err
        except (AddressBlockedError, AddressUnreachableError) as err:
            raise UpdateFailed(self.connection.state.reason or str(err)) from err
        except AsustorError as err:
            _LOGGER.error("Error getting NAS statistics: %s", err)
            raise UpdateFailed(f"Error getting NAS statistics: {err}") from err
