"""The ASUSTOR NAS integration."""

import logging
from typing import Any

import requests

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import ConfigEntryNotReady
from homeassistant.helpers import issue_registry as ir

from .api.adm_api import AdmApi
from .api.ezconnect import EzConnectClient
from .connectivity import ConnectionRegistry, NasConnection
from .const import (
    CONF_CLOUD_ID,
    CONF_LAST_URL_CHECK,
    CONF_PASSWORD,
    CONF_SESSION_ID,
    CONF_URL,
    CONF_USERNAME,
    DEFAULT_USERNAME,
    DOMAIN,
    ISSUE_ADM_DEFENDER_BLOCKED,
)
from .coordinator import AsustorCoordinator
from .device import AsustorNasDevice
from .error import DuplicateDeviceError
from .models import ConnectivityState
from .utils import decrypt_password

_LOGGER = logging.getLogger(__name__)

PLATFORMS = [Platform.SENSOR]


def _get_registry(hass: HomeAssistant) -> ConnectionRegistry:
    """Return the connection registry shared by all entries."""
    domain_data = hass.data.setdefault(DOMAIN, {})
    if "connections" not in domain_data:
        domain_data["connections"] = ConnectionRegistry()
    return domain_data["connections"]


def _create_connection(hass: HomeAssistant, entry: ConfigEntry) -> NasConnection:
    """Create the connection record from config entry data."""
    cloud_id = entry.data[CONF_CLOUD_ID]
    username = entry.data.get(CONF_USERNAME, DEFAULT_USERNAME)
    password = decrypt_password(entry.data.get(CONF_PASSWORD, ""), cloud_id)

    http_session = requests.Session()
    return NasConnection(
        cloud_id,
        AdmApi(username, password, session=http_session),
        EzConnectClient(session=http_session),
        url=entry.data.get(CONF_URL),
        last_url_check=entry.data.get(CONF_LAST_URL_CHECK, 0.0),
        session_id=entry.data.get(CONF_SESSION_ID),
        executor=hass.async_add_executor_job,
    )


def _issue_id(cloud_id: str) -> str:
    return f"{ISSUE_ADM_DEFENDER_BLOCKED}_{cloud_id}"


@callback
def _async_persist_connection(
    hass: HomeAssistant, entry: ConfigEntry, connection: NasConnection
) -> None:
    """Write the working address and session back into the config entry."""
    session = connection.session
    data: dict[str, Any] = {
        **entry.data,
        CONF_URL: connection.url,
        CONF_LAST_URL_CHECK: connection.last_url_check,
        CONF_SESSION_ID: session.sid if session else None,
    }
    if data != entry.data:
        hass.config_entries.async_update_entry(entry, data=data)


@callback
def _async_handle_state_change(
    hass: HomeAssistant,
    entry: ConfigEntry,
    state: ConnectivityState,
    reason: str | None,
) -> None:
    """Raise or clear the ADM Defender repair issue."""
    cloud_id = entry.data[CONF_CLOUD_ID]

    if state is ConnectivityState.BLOCKED:
        _LOGGER.warning("%s is unavailable: %s", entry.title, reason)
        ir.async_create_issue(
            hass,
            DOMAIN,
            _issue_id(cloud_id),
            is_fixable=False,
            severity=ir.IssueSeverity.ERROR,
            translation_key=ISSUE_ADM_DEFENDER_BLOCKED,
            translation_placeholders={"name": entry.title},
        )
        return

    if state is ConnectivityState.UNREACHABLE:
        _LOGGER.warning("%s is unavailable: %s", entry.title, reason)
    elif state is ConnectivityState.AVAILABLE:
        _LOGGER.info("%s is available", entry.title)

    ir.async_delete_issue(hass, DOMAIN, _issue_id(cloud_id))


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up ASUSTOR NAS from a config entry."""
    _LOGGER.debug("Starting integration initialization: %s", entry.entry_id)

    cloud_id = entry.data[CONF_CLOUD_ID]
    registry = _get_registry(hass)
    connection = _create_connection(hass, entry)

    try:
        registry.register(connection)
    except DuplicateDeviceError as e:
        raise ConfigEntryNotReady(f"NAS {cloud_id} is already set up") from e

    device = AsustorNasDevice(hass, entry.title, cloud_id, connection)

    @callback
    def _async_connection_updated() -> None:
        _async_persist_connection(hass, entry, connection)
        device.set_configuration_url(connection.url)

    @callback
    def _async_state_changed(state: ConnectivityState, reason: str | None) -> None:
        _async_handle_state_change(hass, entry, state, reason)

    entry.async_on_unload(connection.add_update_listener(_async_connection_updated))
    entry.async_on_unload(connection.state.add_listener(_async_state_changed))

    coordinator = AsustorCoordinator(hass, entry, connection)
    try:
        await coordinator.async_config_entry_first_refresh()
    except Exception:
        registry.remove(cloud_id)
        raise

    hass.data[DOMAIN][entry.entry_id] = {
        "connection": connection,
        "coordinator": coordinator,
        "device": device,
    }

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    _LOGGER.info("Integration initialization completed for %s", entry.title)
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload config entry."""
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        hass.data[DOMAIN].pop(entry.entry_id, None)
        _get_registry(hass).remove(entry.data[CONF_CLOUD_ID])
        ir.async_delete_issue(hass, DOMAIN, _issue_id(entry.data[CONF_CLOUD_ID]))
    return unload_ok
