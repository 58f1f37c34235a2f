"""Config flow for ASUSTOR NAS."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import logging
from typing import Any

import requests
import voluptuous as vol

from homeassistant import config_entries
from homeassistant.core import HomeAssistant

from .api.adm_api import AdmApi
from .api.ezconnect import EzConnectClient
from .connectivity import NasConnection
from .const import (
    CONF_CLOUD_ID,
    CONF_PASSWORD,
    CONF_SESSION_ID,
    CONF_URL,
    CONF_USERNAME,
    DEFAULT_USERNAME,
    DOMAIN,
)
from .error import DuplicateDeviceError
from .models import ProbeProgress
from .pairing import AuthStatus, PairingSession, SearchResult, SearchStatus
from .utils import encrypt_password

_LOGGER = logging.getLogger(__name__)


def _get_connection(hass: HomeAssistant, cloud_id: str) -> NasConnection | None:
    """Return the live connection of a configured NAS, if it is set up."""
    registry = hass.data.get(DOMAIN, {}).get("connections")
    return registry.get(cloud_id) if registry is not None else None


def reauth_address(hass: HomeAssistant, entry_data: Mapping[str, Any]) -> str | None:
    """Return the address new credentials are verified against.

    The live connection may have moved to another address since the entry
    was last written, so its address takes precedence.
    """
    connection = _get_connection(hass, entry_data[CONF_CLOUD_ID])
    if connection is not None and connection.url:
        return connection.url
    return entry_data.get(CONF_URL)


AUTH_ERRORS = {
    AuthStatus.INVALID: "invalid_auth",
    AuthStatus.BLOCKED: "blocked",
    AuthStatus.ERROR: "cannot_connect",
}


class AsustorConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for ASUSTOR NAS."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize the config flow."""
        self._pairing: PairingSession | None = None
        self._search_task: asyncio.Task[SearchResult] | None = None
        self._search_errors: dict[str, str] = {}

    def _create_pairing(self) -> PairingSession:
        """Create a pairing session using the executor of this instance."""
        http_session = requests.Session()
        return PairingSession(
            EzConnectClient(session=http_session),
            AdmApi(DEFAULT_USERNAME, "", session=http_session),
            executor=self.hass.async_add_executor_job,
        )

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Handle the cloud id step.

        Args:
            user_input: User input data from the form

        Returns:
            FlowResult: Next step or form to show

        """
        errors = self._search_errors
        self._search_errors = {}

        if user_input is not None:
            cloud_id = user_input[CONF_CLOUD_ID].strip()
            if not cloud_id:
                errors = {CONF_CLOUD_ID: "invalid_cloud_id"}
            else:
                await self.async_set_unique_id(cloud_id)
                self._abort_if_unique_id_configured()

                self._pairing = self._create_pairing()
                self._pairing.submit_cloud_id(cloud_id)
                self._search_task = self.hass.async_create_task(
                    self._async_collect_search_result(self._pairing)
                )
                return await self.async_step_search()

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema({vol.Required(CONF_CLOUD_ID): str}),
            errors=errors,
        )

    async def _async_collect_search_result(
        self, pairing: PairingSession
    ) -> SearchResult:
        """Consume search progress events until the terminal result."""
        async for event in pairing.async_events():
            if isinstance(event, ProbeProgress):
                _LOGGER.debug(
                    "Pairing %s: %s %s (%s)",
                    pairing.cloud_id,
                    event.origin,
                    event.status,
                    event.address,
                )
                continue
            _LOGGER.info("Pairing %s search finished: %s", pairing.cloud_id, event.status)
            return event
        return SearchResult(SearchStatus.ERROR)

    async def async_step_search(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Show progress while the working address is searched in the background."""
        if self._search_task is None or self._pairing is None:
            return await self.async_step_user()

        if not self._search_task.done():
            return self.async_show_progress(
                step_id="search",
                progress_action="search",
                progress_task=self._search_task,
                description_placeholders={"cloud_id": self._pairing.cloud_id or ""},
            )

        result = self._search_task.result()
        self._search_task = None

        if result.status is SearchStatus.SUCCESS:
            return self.async_show_progress_done(next_step_id="auth")

        self._search_errors = {
            CONF_CLOUD_ID: "invalid_cloud_id"
            if result.status is SearchStatus.INVALID
            else "cannot_connect"
        }
        return self.async_show_progress_done(next_step_id="user")

    async def async_step_auth(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Handle authentication step.

        Args:
            user_input: User input data from the form

        Returns:
            FlowResult: Next step or form to show

        """
        errors: dict[str, str] = {}
        pairing = self._pairing
        if pairing is None or not pairing.url or not pairing.cloud_id:
            return self.async_abort(reason="missing_data")

        if user_input is not None:
            result = await pairing.async_submit_credentials(
                user_input[CONF_USERNAME], user_input[CONF_PASSWORD]
            )
            if result.status is AuthStatus.SUCCESS:
                return await self._async_create_nas_entry(pairing, user_input)
            errors["base"] = AUTH_ERRORS[result.status]

        current_username = (
            user_input.get(CONF_USERNAME, DEFAULT_USERNAME)
            if user_input
            else DEFAULT_USERNAME
        )
        return self.async_show_form(
            step_id="auth",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_USERNAME, default=current_username): str,
                    vol.Required(CONF_PASSWORD): str,
                }
            ),
            description_placeholders={"url": pairing.url},
            errors=errors,
        )

    async def _async_create_nas_entry(
        self, pairing: PairingSession, user_input: dict[str, Any]
    ) -> config_entries.ConfigFlowResult:
        """Check for duplicates and create the config entry."""
        try:
            data = pairing.finalize(self._async_current_ids())
        except DuplicateDeviceError:
            _LOGGER.warning("NAS %s is already configured", pairing.cloud_id)
            return self.async_abort(reason="already_configured")

        cloud_id = data[CONF_CLOUD_ID]
        await self.async_set_unique_id(cloud_id)
        self._abort_if_unique_id_configured()

        data[CONF_USERNAME] = user_input[CONF_USERNAME]
        data[CONF_PASSWORD] = encrypt_password(user_input[CONF_PASSWORD], cloud_id)

        _LOGGER.info("Creating config entry for NAS %s at %s", cloud_id, data[CONF_URL])
        return self.async_create_entry(title=f"ASUSTOR NAS {cloud_id}", data=data)

    async def async_step_reauth(
        self, entry_data: Mapping[str, Any]
    ) -> config_entries.ConfigFlowResult:
        """Handle reauthentication after the NAS rejected the credentials."""
        return await self.async_step_reauth_confirm()

    async def async_step_reauth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Ask for new credentials and verify them against the working address."""
        entry = self._get_reauth_entry()
        errors: dict[str, str] = {}

        if user_input is not None:
            pairing = self._create_pairing()
            address = reauth_address(self.hass, entry.data)
            result = await pairing.async_submit_credentials(
                user_input[CONF_USERNAME], user_input[CONF_PASSWORD], url=address
            )
            if result.status is AuthStatus.SUCCESS:
                if connection := _get_connection(self.hass, entry.data[CONF_CLOUD_ID]):
                    connection.update_credentials(
                        user_input[CONF_USERNAME], user_input[CONF_PASSWORD]
                    )
                return self.async_update_reload_and_abort(
                    entry,
                    data_updates={
                        CONF_USERNAME: user_input[CONF_USERNAME],
                        CONF_PASSWORD: encrypt_password(
                            user_input[CONF_PASSWORD], entry.data[CONF_CLOUD_ID]
                        ),
                        CONF_URL: address,
                        CONF_SESSION_ID: result.session_id,
                    },
                )
            errors["base"] = AUTH_ERRORS[result.status]

        return self.async_show_form(
            step_id="reauth_confirm",
            data_schema=vol.Schema(
                {
                    vol.Required(
                        CONF_USERNAME,
                        default=entry.data.get(CONF_USERNAME, DEFAULT_USERNAME),
                    ): str,
                    vol.Required(CONF_PASSWORD): str,
                }
            ),
            description_placeholders={"name": entry.title},
            errors=errors,
        )
