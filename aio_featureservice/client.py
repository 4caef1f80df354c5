"""Interface for making API calls."""

import json
import logging
import math
from collections.abc import Mapping
from contextlib import suppress
from json import JSONDecodeError
from types import TracebackType
from typing import Any

from aio_featureservice import __version__
from aio_featureservice.error import _edit_result_or_raise, _features_or_raise
from aio_featureservice.esri import EsriConverter, FeatureConverter
from aio_featureservice.settings import ServiceConfig
from aio_featureservice.spatial import FEATURE_COLLECTION, GeoJsonDict

import aiohttp


__docformat__ = "google"
__all__ = (
    "FeatureService",
    "DEFAULT_USER_AGENT",
)


DEFAULT_USER_AGENT = f"aio-featureservice/{__version__}"
"""User agent used by clients that create their own session."""

_NULL_LOGGER = logging.getLogger("aio_featureservice")
_NULL_LOGGER.addHandler(logging.NullHandler())


class FeatureService:
    """
    A client for a single layer of a feature service.

    Features are exchanged as GeoJSON, and converted to and from the service's
    own encoding. Every operation makes exactly one request, and is never retried.
    Operations do not depend on each other, and can run concurrently,
    f.e. with ``asyncio.gather()``.

    Args:
        options: Either a ``ServiceConfig``, or a configuration object with the keys
                 ``url``, ``idField``, ``token``, and optionally ``defaultResultOptions``
                 (see ``ServiceConfig.from_options``).
        converter: Converts features between GeoJSON and the service's encoding.
                   Defaults to an ``EsriConverter`` for the configured identifier field.
        logger: The logger to use for all logging output of this client.
        session: A session to make all requests with. If not set, the client creates
                 its own session, and closes it in ``close()``. Timeouts are up to
                 the session.
        user_agent: A string used for the User-Agent header of the client's own session.
        concurrency: The maximum number of simultaneous connections of the client's
                     own session.

    References:
        - https://developers.arcgis.com/rest/services-reference/enterprise/feature-service-layer/
    """

    __slots__ = (
        "_concurrency",
        "_config",
        "_converter",
        "_logger",
        "_maybe_session",
        "_owns_session",
        "_user_agent",
    )

    def __init__(  # noqa: PLR0913
        self,
        options: ServiceConfig | Mapping[str, Any] | None = None,
        converter: FeatureConverter | None = None,
        logger: logging.Logger = _NULL_LOGGER,
        session: aiohttp.ClientSession | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        concurrency: int = 32,
    ) -> None:
        if concurrency <= 0:
            msg = "'concurrency' must be > 0"
            raise ValueError(msg)

        logger.debug("creating feature service client")

        if isinstance(options, ServiceConfig):
            self._config = options
        else:
            self._config = ServiceConfig.from_options(options)

        self._converter = converter or EsriConverter(id_field=self._config.id_field)
        self._logger = logger
        self._user_agent = user_agent
        self._concurrency = concurrency

        self._maybe_session = session
        self._owns_session = session is None

    @property
    def config(self) -> ServiceConfig:
        """The settings of this client."""
        return self._config

    @property
    def converter(self) -> FeatureConverter:
        """The converter used for all features of this client."""
        return self._converter

    def _session(self) -> aiohttp.ClientSession:
        """The session used for all requests of this client."""
        if not self._owns_session:
            assert self._maybe_session is not None
            return self._maybe_session

        if not self._maybe_session or self._maybe_session.closed:
            headers = {"User-Agent": self._user_agent}
            connector = aiohttp.TCPConnector(limit=self._concurrency)
            self._maybe_session = aiohttp.ClientSession(headers=headers, connector=connector)

        return self._maybe_session

    async def close(self) -> None:
        """Close the underlying session, unless it was passed to this client."""
        if self._owns_session and self._maybe_session and not self._maybe_session.closed:
            # is raised when there are still active requests. that's ok
            with suppress(aiohttp.ServerDisconnectedError):
                await self._maybe_session.close()

    async def __aenter__(self) -> "FeatureService":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def get(self, params: Mapping[str, Any] | None = None) -> GeoJsonDict:
        """
        Query features of the layer.

        Given parameters take precedence over the configured default result options.
        The ``token`` parameter however is always the configured one.

        Args:
            params: query parameters, f.e. ``{"where": "TransTech > 10"}``.
                    When dealing with strings in ``where`` clauses, use single quotes.

        Returns:
            a GeoJSON feature collection

        Raises:
            ServiceError: if the service responded with an error
            ResponseError: if the response does not contain any features
            aiohttp.ClientError: if the request failed
        """
        self._logger.debug("invoking get")

        effective = self._config.query_params(params)

        self._logger.debug(f"params: {_stringify(effective)}")

        url = self._config.endpoint("query")

        async with self._session().get(
            url=url,
            params=_wire_params(effective),
        ) as response:
            body = await _read_json(response)

        self._logger.debug(f"get response: {_stringify(body)}")

        features = _features_or_raise(body)

        return {
            "type": FEATURE_COLLECTION,
            "features": [self._converter.to_geojson(feature) for feature in features],
        }

    async def add(self, feature: GeoJsonDict) -> None:
        """
        Add a feature to the layer.

        Raises:
            ResponseError: if the response could not be parsed, or has no result
            EditError: if the service failed to add the feature
            UnexpectedResultError: if the result is neither a success nor a failure
            aiohttp.ClientError: if the request failed
            ValueError: if the feature's geometry cannot be converted
        """
        self._logger.debug("invoking add")

        esri = self._converter.to_esri(feature)

        await self._edit(
            "addFeatures",
            {
                "f": "json",
                "features": json.dumps([esri]),
                "token": self._config.token,
            },
        )

    async def update(self, feature: GeoJsonDict) -> None:
        """
        Update the geometry and/or attributes of a feature of the layer.

        The feature is identified by its identifier attribute, which is
        converted to a number, as the service expects. A missing or non-numeric
        identifier is sent as ``null``, and rejected by the service.

        Raises:
            ResponseError: if the response could not be parsed, or has no result
            EditError: if the service failed to update the feature
            UnexpectedResultError: if the result is neither a success nor a failure
            aiohttp.ClientError: if the request failed
            ValueError: if the feature's geometry cannot be converted
        """
        self._logger.debug("invoking update")

        esri = self._converter.to_esri(feature)

        attributes = esri["attributes"]
        id_field = self._config.id_field
        attributes[id_field] = _to_number(attributes[id_field]) if id_field in attributes else None

        await self._edit(
            "updateFeatures",
            {
                "f": "json",
                "features": json.dumps([esri]),
                "token": self._config.token,
            },
        )

    async def delete(self, object_ids: str | int) -> None:
        """
        Delete features of the layer.

        Args:
            object_ids: the identifier of a feature, or a comma-separated list
                        of identifiers, which is sent as it is. Join lists of
                        identifiers with commas beforehand; a list would be sent
                        as a JSON array, which the service does not accept.

        Raises:
            ResponseError: if the response could not be parsed, or has no result
            EditError: if the service failed to delete the feature
            UnexpectedResultError: if the result is neither a success nor a failure
            aiohttp.ClientError: if the request failed
        """
        self._logger.debug(f"invoking delete for ids {object_ids}")

        await self._edit(
            "deleteFeatures",
            {
                "objectIds": object_ids,
                "f": "json",
                "rollbackOnFailure": True,
                "token": self._config.token,
            },
        )

    async def _edit(self, operation: str, form: dict[str, Any]) -> None:
        """Post an edit, and check its single result."""
        url = self._config.endpoint(operation)

        async with self._session().post(
            url=url,
            data=_wire_params(form),
        ) as response:
            text = await response.text()

        self._logger.debug(f"{operation} response: {text}")

        _edit_result_or_raise(text, self._logger)


async def _read_json(response: aiohttp.ClientResponse) -> Any:
    """
    The JSON body of a response, regardless of its content type.

    Returns:
        the parsed body, or its text if it is not JSON
    """
    text = await response.text()
    try:
        return json.loads(text)
    except JSONDecodeError:
        return text


def _wire_params(params: Mapping[str, Any]) -> dict[str, str]:
    """
    Serialize parameters for a query string or form body.

    Parameters set to ``None`` are left out. Booleans are sent as ``true`` or ``false``,
    and objects and arrays are sent as JSON.
    """
    wire = {}

    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool | dict | list | tuple):
            wire[key] = json.dumps(value)
        else:
            wire[key] = str(value)

    return wire


def _to_number(value: Any) -> int | float | None:
    """
    Convert an identifier to a number.

    Returns:
        - ``0`` for ``None`` and for blank strings.
        - integers for booleans, integers, and strings of integers.
        - floats for finite floats, and strings of other finite numbers.
        - ``None`` for anything else, which is sent as ``null``.
    """
    if value is None:
        return 0

    if isinstance(value, bool):
        return int(value)

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        return value if math.isfinite(value) else None

    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return 0

    with suppress(ValueError):
        return int(text)

    with suppress(ValueError):
        number = float(text)
        if math.isfinite(number):
            return int(number) if number.is_integer() else number

    return None


def _stringify(obj: Any) -> str:
    return json.dumps(obj, indent=2, default=str)
