"""Client configuration and default merging."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


__docformat__ = "google"
__all__ = (
    "ServiceConfig",
    "DEFAULT_ID_FIELD",
    "DEFAULT_RESULT_OPTIONS",
    "with_defaults",
)


DEFAULT_ID_FIELD = "OBJECTID"
"""Conventional name of the identifier field of a feature service layer."""

DEFAULT_RESULT_OPTIONS: Mapping[str, Any] = MappingProxyType(
    {
        "returnCountsOnly": False,
        "returnIdsOnly": False,
        "returnGeometry": True,
        "outSR": "4326",
        "outFields": "*",
        "f": "json",
    }
)
"""Query parameters sent with every query, unless configured or given otherwise."""


def with_defaults(obj: Mapping[str, Any] | None, defaults: Mapping[str, Any]) -> dict[str, Any]:
    """
    Fill in the gaps of ``obj`` with ``defaults``.

    A key counts as a gap if it is missing, or if it maps to ``None``.
    Neither of the given mappings is modified.
    """
    merged = dict(obj or {})
    for key, value in defaults.items():
        if merged.get(key) is None:
            merged[key] = value
    return merged


@dataclass(kw_only=True, frozen=True, slots=True)
class ServiceConfig:
    """
    Settings of a feature service client.

    Attributes:
        url: The url of a feature service layer,
             f.e. ``"https://your.site.com/arcgis/rest/services/YourService/FeatureServer/0"``
        id_field: The name of the attribute that holds the unique numeric identifier
                  of each feature.
        token: An access token that is sent with every request, if set.
        default_result_options: Query parameters that are sent with every query,
                                unless given otherwise.
    """

    url: str | None = None
    id_field: str = DEFAULT_ID_FIELD
    token: str | None = None
    default_result_options: Mapping[str, Any] = field(
        default_factory=lambda: DEFAULT_RESULT_OPTIONS
    )

    def __post_init__(self) -> None:
        # read-only view of a private copy
        options = MappingProxyType(dict(self.default_result_options))
        object.__setattr__(self, "default_result_options", options)

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None) -> "ServiceConfig":
        """
        Build settings from a configuration object, as documented by the service.

        The configuration object may contain ``url``, ``idField``, ``token`` and
        ``defaultResultOptions``. The latter is merged over ``DEFAULT_RESULT_OPTIONS``,
        keeping any additional query parameters it specifies.

        Nothing is validated here: a missing or malformed url is only noticed once
        a request is made.
        """
        settings = with_defaults(options, {"defaultResultOptions": DEFAULT_RESULT_OPTIONS})

        result_options = settings["defaultResultOptions"]
        if result_options is not DEFAULT_RESULT_OPTIONS:
            result_options = with_defaults(result_options, DEFAULT_RESULT_OPTIONS)

        return cls(
            url=settings.get("url"),
            id_field=settings.get("idField") or DEFAULT_ID_FIELD,
            token=settings.get("token"),
            default_result_options=result_options,
        )

    def query_params(self, params: Mapping[str, Any] | None) -> dict[str, Any]:
        """
        The effective parameters of a query.

        Given parameters take precedence over the default result options. The token
        is always set to the configured one, even if that is ``None``, in which case
        a given ``token`` parameter is dropped.
        """
        effective = with_defaults(params, self.default_result_options)
        effective["token"] = self.token
        return effective

    def endpoint(self, operation: str) -> str:
        """
        The url of one of the layer's operations, f.e. ``"query"`` or ``"addFeatures"``.

        Raises:
            ValueError: if no url is configured
        """
        if not self.url:
            msg = "'url' is not configured"
            raise ValueError(msg)
        return f"{self.url}/{operation}"
