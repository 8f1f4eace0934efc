"""
Access token resolution for the gist backend.

First success wins:

    1. GH_TOKEN / GITHUB_TOKEN environment variables
    2. OS secret store (service "veil", account "github_token")
    3. ``gh auth token`` credential helper
    4. OAuth device authorization, when VEIL_GITHUB_CLIENT_ID is set

The device flow is the only wait loop in veil: it sleeps the
server-given interval between polls and gives up at the server-given
deadline.
"""

from __future__ import annotations

import io
import logging
import os
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence

import keyring
import qrcode
import requests
from keyring.errors import KeyringError
from rich.console import Console

from ..errors import DeviceFlowTimeoutError, KeyStorageError, TokenResolutionError
from ..identity import SERVICE_NAME

logger = logging.getLogger("veil.sync.tokens")

TOKEN_ENV_VARS = ("GH_TOKEN", "GITHUB_TOKEN")
TOKEN_ACCOUNT = "github_token"
CREDENTIAL_HELPER = ("gh", "auth", "token")
CLIENT_ID_ENV = "VEIL_GITHUB_CLIENT_ID"

DEVICE_CODE_URL = "https://github.com/login/device/code"
ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"
DEVICE_SCOPE = "gist read:user"
DEVICE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"


@dataclass
class DeviceCode:
    """Challenge returned by the device authorization endpoint."""

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: Optional[str] = None
    interval: int = 5
    expires_in: int = 900

    @property
    def url(self) -> str:
        return self.verification_uri_complete or self.verification_uri


def render_qr(text: str) -> str:
    """ASCII QR code for terminal display."""
    qr = qrcode.QRCode(box_size=1, border=1)
    qr.add_data(text)
    qr.make(fit=True)
    buf = io.StringIO()
    qr.print_ascii(out=buf)
    return buf.getvalue()


def print_device_prompt(code: DeviceCode, console: Optional[Console] = None) -> None:
    """Show the verification URL (with QR) and the user code."""
    console = console or Console(stderr=True)
    if code.url:
        console.print(render_qr(code.url), highlight=False)
    console.print(f"Open: [cyan]{code.verification_uri}[/]")
    console.print(f"Code: [bold]{code.user_code}[/]")


class DeviceFlow:
    """RFC 8628 device authorization against GitHub.

    Args:
        client_id: OAuth app client id.
        http: Optional requests session.
        sleep: Sleep function, injectable for tests.
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        client_id: str,
        http: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        device_code_url: str = DEVICE_CODE_URL,
        token_url: str = ACCESS_TOKEN_URL,
        scope: str = DEVICE_SCOPE,
    ):
        self.client_id = client_id
        self.http = http or requests.Session()
        self.sleep = sleep
        self.clock = clock
        self.device_code_url = device_code_url
        self.token_url = token_url
        self.scope = scope

    def _post(self, url: str, form: dict[str, str]) -> requests.Response:
        return self.http.post(
            url, data=form, headers={"Accept": "application/json"}, timeout=20
        )

    def start(self) -> DeviceCode:
        """Request a device code.

        Raises:
            TokenResolutionError: If the endpoint refuses or is unreachable.
        """
        try:
            resp = self._post(self.device_code_url, {"client_id": self.client_id, "scope": self.scope})
        except requests.RequestException as exc:
            raise TokenResolutionError(f"device code request failed: {exc}") from exc
        if resp.status_code >= 300:
            raise TokenResolutionError(
                f"device code request failed: {resp.status_code} {resp.text.strip()}"
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise TokenResolutionError("device code response is not JSON") from exc
        return DeviceCode(
            device_code=str(data.get("device_code") or ""),
            user_code=str(data.get("user_code") or ""),
            verification_uri=str(data.get("verification_uri") or ""),
            verification_uri_complete=data.get("verification_uri_complete") or None,
            interval=int(data.get("interval") or 5),
            expires_in=int(data.get("expires_in") or 900),
        )

    def poll(self, code: DeviceCode) -> str:
        """Poll the token endpoint until success, denial or the deadline.

        Raises:
            TokenResolutionError: On an explicit error such as access_denied.
            DeviceFlowTimeoutError: If the deadline passes first.
        """
        interval = max(1, code.interval)
        deadline = self.clock() + code.expires_in
        form = {
            "client_id": self.client_id,
            "device_code": code.device_code,
            "grant_type": DEVICE_GRANT,
        }
        while self.clock() < deadline:
            self.sleep(interval)
            try:
                payload = self._post(self.token_url, form).json()
            except (requests.RequestException, ValueError) as exc:
                logger.debug("Device token poll failed, retrying: %s", exc)
                continue

            token = payload.get("access_token")
            if token:
                return str(token)
            error = str(payload.get("error") or "")
            if error == "authorization_pending":
                continue
            if error == "slow_down":
                interval += 5
                continue
            if error:
                detail = payload.get("error_description") or error
                raise TokenResolutionError(f"device authorization failed: {detail}")

        raise DeviceFlowTimeoutError("device flow timed out before authorization completed")

    def run(self, prompt: Callable[[DeviceCode], None] = print_device_prompt) -> str:
        code = self.start()
        prompt(code)
        return self.poll(code)


def store_token(token: str) -> None:
    """Save a token in the OS secret store.

    Raises:
        KeyStorageError: If the token is empty or the store rejects it.
    """
    token = token.strip()
    if not token:
        raise KeyStorageError("empty token")
    try:
        keyring.set_password(SERVICE_NAME, TOKEN_ACCOUNT, token)
    except KeyringError as exc:
        raise KeyStorageError(f"store token in keychain: {exc}") from exc


class TokenResolver:
    """Walks the token chain.

    Args:
        environ: Environment mapping. Defaults to os.environ.
        helper: Credential helper argv.
        prompt: Callback that displays the device code to the user.
        flow_factory: Builds a DeviceFlow for a client id.
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        helper: Sequence[str] = CREDENTIAL_HELPER,
        prompt: Callable[[DeviceCode], None] = print_device_prompt,
        flow_factory: Callable[[str], DeviceFlow] = DeviceFlow,
    ):
        self.environ = environ if environ is not None else os.environ
        self.helper = list(helper)
        self.prompt = prompt
        self.flow_factory = flow_factory

    def from_env(self) -> Optional[str]:
        for name in TOKEN_ENV_VARS:
            value = (self.environ.get(name) or "").strip()
            if value:
                return value
        return None

    def from_keychain(self) -> Optional[str]:
        try:
            value = keyring.get_password(SERVICE_NAME, TOKEN_ACCOUNT)
        except KeyringError as exc:
            logger.debug("Keychain token lookup failed: %s", exc)
            return None
        return (value or "").strip() or None

    def from_helper(self) -> Optional[str]:
        if not self.helper:
            return None
        try:
            result = subprocess.run(
                self.helper, capture_output=True, text=True, timeout=15, check=False
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("Credential helper %s unavailable: %s", self.helper[0], exc)
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def from_device_flow(self) -> Optional[str]:
        client_id = (self.environ.get(CLIENT_ID_ENV) or "").strip()
        if not client_id:
            return None
        token = self.flow_factory(client_id).run(self.prompt)
        try:
            store_token(token)
        except KeyStorageError as exc:
            logger.warning("Could not remember device-flow token: %s", exc)
        return token

    def resolve(self) -> str:
        """Return the first token any source yields.

        Raises:
            TokenResolutionError: If every source comes up empty.
            DeviceFlowTimeoutError: If the device flow expires.
        """
        for source in (self.from_env, self.from_keychain, self.from_helper, self.from_device_flow):
            token = source()
            if token:
                logger.debug("Token resolved via %s", source.__name__)
                return token
        raise TokenResolutionError(
            "missing GitHub token: set GH_TOKEN/GITHUB_TOKEN, run `gh auth login`, "
            f"or set {CLIENT_ID_ENV} for device flow"
        )
