"""Writer settings parsed from the host's raw settings mapping."""

import base64
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from copperegg_writer.core.exceptions import InvalidConfiguration

SETTING_URL = "url"
SETTING_USERNAME = "username"
SETTING_TOKEN = "token"
SETTING_PROXY_HOST = "proxyHost"
SETTING_PROXY_PORT = "proxyPort"
SETTING_API_TIMEOUT_IN_MILLIS = "coppereggApiTimeoutInMillis"
SETTING_SOURCE = "source"
SETTING_DYNAMIC_GROUP_ID = "dynamicGroupId"
SETTING_CATALOG_PATH = "catalogPath"

DEFAULT_API_URL = "https://api.copperegg.com/v2/revealmetrics"
DEFAULT_API_TIMEOUT_IN_MILLIS = 20000
DEFAULT_SOURCE = "#hostname#"
DEFAULT_DYNAMIC_GROUP_ID = "jeff_test2"

# The sink ignores the password and authenticates on the API key alone.
BASIC_AUTH_PASSWORD = "U"


def basic_auth_token(user: str) -> str:
    """Return the base64 credentials for an ``Authorization: Basic`` header."""
    raw = f"{user}:{BASIC_AUTH_PASSWORD}".encode("ascii")
    return base64.b64encode(raw).decode("ascii")


def _parse_url(value: str) -> str:
    """Validate the API base URL and strip any trailing slash."""
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidConfiguration(f"Invalid gateway URL passed {value!r}")
    try:
        _ = parts.port
    except ValueError as e:
        raise InvalidConfiguration(f"Invalid gateway URL passed {value!r}") from e
    return value.rstrip("/")


def _parse_int(settings: Mapping[str, Any], name: str, default: int | None) -> int:
    value = settings.get(name, default)
    if value is None:
        raise InvalidConfiguration(f"No setting {name!r} found")
    if isinstance(value, bool):
        raise InvalidConfiguration(f"Setting '{name}={value}' is not an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise InvalidConfiguration(
            f"Setting '{name}={value}' is not an integer"
        ) from e


@dataclass(frozen=True)
class WriterSettings:
    """Resolved writer configuration.

    Attributes:
        url: API base URL without trailing slash.
        user: Effective Basic-auth username (always the API token).
        basic_auth: Base64 value for the Authorization header.
        read_timeout_ms: Read timeout applied to every sink call.
        source: Literal source token used to build source-ids.
        proxy_host: Optional HTTP proxy host.
        proxy_port: Proxy port, set whenever proxy_host is.
        dynamic_group_id: Initial sink ID of the dynamic family.
        catalog_path: Alternate catalog file, None for the bundled one.
    """

    url: str
    user: str
    basic_auth: str
    read_timeout_ms: int = DEFAULT_API_TIMEOUT_IN_MILLIS
    source: str = DEFAULT_SOURCE
    proxy_host: str | None = None
    proxy_port: int | None = None
    dynamic_group_id: str | None = DEFAULT_DYNAMIC_GROUP_ID
    catalog_path: str | None = None

    @property
    def proxy_url(self) -> str | None:
        if not self.proxy_host:
            return None
        return f"http://{self.proxy_host}:{self.proxy_port}"

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> "WriterSettings":
        """Build settings from the host's raw key/value mapping.

        Args:
            settings: Raw settings (see the SETTING_* constants).

        Returns:
            Frozen WriterSettings.

        Raises:
            InvalidConfiguration: On an unparseable URL, a missing or non-ASCII
                token, or a malformed integer setting.
        """
        url = _parse_url(str(settings.get(SETTING_URL, DEFAULT_API_URL)))

        token = settings.get(SETTING_TOKEN)
        if not token:
            raise InvalidConfiguration(f"No setting {SETTING_TOKEN!r} found")
        # username is accepted but the token always wins, for compatibility
        # with existing deployments.
        user = str(token)
        try:
            basic_auth = basic_auth_token(user)
        except UnicodeEncodeError as e:
            raise InvalidConfiguration(
                f"Setting '{SETTING_TOKEN}' must be ASCII"
            ) from e

        proxy_host = settings.get(SETTING_PROXY_HOST) or None
        proxy_port = None
        if proxy_host is not None:
            proxy_port = _parse_int(settings, SETTING_PROXY_PORT, None)

        timeout = _parse_int(
            settings, SETTING_API_TIMEOUT_IN_MILLIS, DEFAULT_API_TIMEOUT_IN_MILLIS
        )
        if timeout <= 0:
            raise InvalidConfiguration(
                f"Setting '{SETTING_API_TIMEOUT_IN_MILLIS}={timeout}' must be positive"
            )

        catalog_path = settings.get(SETTING_CATALOG_PATH)
        return cls(
            url=url,
            user=user,
            basic_auth=basic_auth,
            read_timeout_ms=timeout,
            source=str(settings.get(SETTING_SOURCE, DEFAULT_SOURCE)),
            proxy_host=str(proxy_host) if proxy_host is not None else None,
            proxy_port=proxy_port,
            dynamic_group_id=settings.get(
                SETTING_DYNAMIC_GROUP_ID, DEFAULT_DYNAMIC_GROUP_ID
            ),
            catalog_path=str(catalog_path) if catalog_path else None,
        )
