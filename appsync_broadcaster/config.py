"""Configuration for the AppSync broadcaster.

``BroadcasterConfig`` is validated on construction, so a broadcaster can
never be assembled from an incomplete configuration and no network call is
made before every required value is known.

Usage
-----
Build the configuration from the nested mapping a host application keeps:

>>> config = BroadcasterConfig.from_mapping(
...     {
...         "namespace": "default",
...         "app_id": "abc123",
...         "region": "eu-west-1",
...         "cache": {"driver": "memory", "prefix": "appsync_broadcast_"},
...         "options": {
...             "cognito_pool": "my-pool",
...             "cognito_region": "eu-west-1",
...             "cognito_client_id": "client",
...             "cognito_client_secret": "secret",
...         },
...     }
... )
>>> config.event_api_base_url
'https://abc123.appsync-api.eu-west-1.amazonaws.com'

Or load it from ``APPSYNC_*`` environment variables with
``BroadcasterConfig.from_env()``.

"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses as dc
import os

from appsync_broadcaster.errors import ConfigError

CACHE_DRIVERS = frozenset({"memory", "redis"})

_DEFAULT_NAMESPACE = "default"
_DEFAULT_CACHE_DRIVER = "memory"
_DEFAULT_CACHE_PREFIX = "appsync_broadcast_"
_DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_COGNITO_SCOPE = "default-m2m-resource-server-l0ryrn/read"

_TRUTHY = frozenset({"1", "true", "yes"})


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_flag(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


@dc.dataclass(frozen=True, slots=True)
class CacheConfig:
    """Shared token cache settings.

    Attributes
    ----------
    driver
        Token store backend, ``memory`` or ``redis``.
    prefix
        Prefix applied to every cache key.
    url
        Connection URL for the ``redis`` driver.

    """

    driver: str
    prefix: str
    url: str | None = None

    def __post_init__(self) -> None:
        """Reject empty fields and unknown drivers."""
        if _is_blank(self.driver):
            raise ConfigError.missing_key("cache.driver")
        if _is_blank(self.prefix):
            raise ConfigError.missing_key("cache.prefix")
        if self.driver not in CACHE_DRIVERS:
            raise ConfigError.unknown_cache_driver(self.driver, CACHE_DRIVERS)


@dc.dataclass(frozen=True, slots=True)
class CognitoOptions:
    """Client-credentials settings for the Cognito token endpoint."""

    cognito_pool: str
    cognito_region: str
    cognito_client_id: str
    cognito_client_secret: str = dc.field(repr=False)
    cognito_scope: str = DEFAULT_COGNITO_SCOPE

    def __post_init__(self) -> None:
        """Reject empty required options."""
        for option in (
            "cognito_pool",
            "cognito_region",
            "cognito_client_id",
            "cognito_client_secret",
        ):
            if _is_blank(getattr(self, option)):
                raise ConfigError.missing_option(option)


@dc.dataclass(frozen=True, slots=True)
class BroadcasterConfig:
    """Immutable configuration held by a broadcaster for its lifetime.

    Attributes
    ----------
    namespace
        Prefix scoping every channel of this deployment.
    app_id
        AppSync Events API identifier.
    region
        AWS region hosting the Events API.
    cache
        Shared token cache settings.
    options
        Cognito client-credentials settings.
    strict
        Raise on partial broadcast failure instead of only logging it.

    """

    namespace: str
    app_id: str
    region: str
    cache: CacheConfig
    options: CognitoOptions
    strict: bool = False

    def __post_init__(self) -> None:
        """Reject empty required keys."""
        for key in ("namespace", "app_id", "region"):
            if _is_blank(getattr(self, key)):
                raise ConfigError.missing_key(key)

    @property
    def event_api_base_url(self) -> str:
        """Return the base URL of the AppSync Events HTTP API."""
        return f"https://{self.app_id}.appsync-api.{self.region}.amazonaws.com"

    @property
    def token_endpoint(self) -> str:
        """Return the Cognito OAuth2 token endpoint."""
        return (
            f"https://{self.options.cognito_pool}.auth."
            f"{self.options.cognito_region}.amazoncognito.com/oauth2/token"
        )

    @property
    def token_cache_key(self) -> str:
        """Return the shared cache key holding the bearer token."""
        return f"{self.cache.prefix}auth_token"

    @staticmethod
    def _section(
        raw: cabc.Mapping[str, object], name: str
    ) -> cabc.Mapping[str, object]:
        section = raw.get(name)
        if section is None:
            raise ConfigError.missing_key(name)
        if not isinstance(section, cabc.Mapping):
            raise ConfigError.invalid_section(name)
        return section

    @staticmethod
    def _required(
        section: cabc.Mapping[str, object],
        key: str,
        missing: cabc.Callable[[str], ConfigError] = ConfigError.missing_key,
        label: str | None = None,
    ) -> str:
        value = section.get(key)
        if _is_blank(value):
            raise missing(label or key)
        return str(value)

    @classmethod
    def from_mapping(cls, raw: cabc.Mapping[str, object]) -> BroadcasterConfig:
        """Build configuration from a nested mapping.

        Parameters
        ----------
        raw
            Mapping with ``namespace``, ``app_id``, ``region``, a ``cache``
            section and an ``options`` section.

        Returns
        -------
        BroadcasterConfig
            Validated configuration.

        Raises
        ------
        ConfigError
            If a required key or option is missing or empty.

        """
        namespace = cls._required(raw, "namespace")
        app_id = cls._required(raw, "app_id")
        region = cls._required(raw, "region")

        options = cls._section(raw, "options")
        cognito = CognitoOptions(
            **{
                option: cls._required(options, option, ConfigError.missing_option)
                for option in (
                    "cognito_pool",
                    "cognito_region",
                    "cognito_client_id",
                    "cognito_client_secret",
                )
            },
            cognito_scope=str(options.get("cognito_scope") or DEFAULT_COGNITO_SCOPE),
        )

        cache = cls._section(raw, "cache")
        cache_url = cache.get("url")
        cache_config = CacheConfig(
            driver=cls._required(cache, "driver", label="cache.driver"),
            prefix=cls._required(cache, "prefix", label="cache.prefix"),
            url=str(cache_url) if cache_url else None,
        )

        return cls(
            namespace=namespace,
            app_id=app_id,
            region=region,
            cache=cache_config,
            options=cognito,
            strict=_parse_flag(raw.get("strict", False)),
        )

    @classmethod
    def from_env(cls) -> BroadcasterConfig:
        """Build configuration from environment variables.

        Reads the following environment variables:

        - ``APPSYNC_NAMESPACE``: Channel namespace (default ``default``)
        - ``APPSYNC_APP_ID``: Required Events API identifier
        - ``APPSYNC_EVENT_REGION``: Required Events API region
        - ``APPSYNC_CACHE_DRIVER``: ``memory`` (default) or ``redis``
        - ``APPSYNC_CACHE_PREFIX``: Cache key prefix
          (default ``appsync_broadcast_``)
        - ``APPSYNC_CACHE_URL``: Redis URL for the ``redis`` driver
        - ``APPSYNC_COGNITO_POOL``: Required Cognito domain prefix
        - ``APPSYNC_COGNITO_REGION``: Cognito region, defaults to
          ``APPSYNC_EVENT_REGION``
        - ``APPSYNC_COGNITO_CLIENT_ID``: Required client id
        - ``APPSYNC_COGNITO_CLIENT_SECRET``: Required client secret
        - ``APPSYNC_COGNITO_SCOPE``: Optional scope override
        - ``APPSYNC_STRICT``: Raise on partial failure when truthy

        Returns
        -------
        BroadcasterConfig
            Validated configuration.

        Raises
        ------
        ConfigError
            If a required variable is missing or empty.

        """
        env = os.environ
        region = env.get("APPSYNC_EVENT_REGION", "").strip()
        driver = env.get("APPSYNC_CACHE_DRIVER", "").strip() or _DEFAULT_CACHE_DRIVER
        cache_url = env.get("APPSYNC_CACHE_URL", "").strip() or None
        if driver == "redis" and cache_url is None:
            cache_url = _DEFAULT_REDIS_URL

        return cls.from_mapping(
            {
                "namespace": env.get("APPSYNC_NAMESPACE", "").strip()
                or _DEFAULT_NAMESPACE,
                "app_id": env.get("APPSYNC_APP_ID", "").strip(),
                "region": region,
                "strict": _parse_flag(env.get("APPSYNC_STRICT", "")),
                "cache": {
                    "driver": driver,
                    "prefix": env.get("APPSYNC_CACHE_PREFIX", "").strip()
                    or _DEFAULT_CACHE_PREFIX,
                    "url": cache_url,
                },
                "options": {
                    "cognito_pool": env.get("APPSYNC_COGNITO_POOL", "").strip(),
                    "cognito_region": env.get("APPSYNC_COGNITO_REGION", "").strip()
                    or region,
                    "cognito_client_id": env.get(
                        "APPSYNC_COGNITO_CLIENT_ID", ""
                    ).strip(),
                    "cognito_client_secret": env.get(
                        "APPSYNC_COGNITO_CLIENT_SECRET", ""
                    ).strip(),
                    "cognito_scope": env.get("APPSYNC_COGNITO_SCOPE", "").strip()
                    or None,
                },
            }
        )


__all__ = [
    "CACHE_DRIVERS",
    "DEFAULT_COGNITO_SCOPE",
    "BroadcasterConfig",
    "CacheConfig",
    "CognitoOptions",
]
