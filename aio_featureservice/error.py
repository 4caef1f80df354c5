"""
Error types.

```
                                (ClientError)
                                      ╷
          ┌─────────────────┬─────────┴────────┬──────────────────────┐
          ╵                 ╵                  ╵                      ╵
     ServiceError     ResponseError        EditError       UnexpectedResultError
```

Errors of the underlying transport, like ``aiohttp.ClientError`` or
``asyncio.TimeoutError``, are not wrapped, and are raised as they are.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, NoReturn, TypeGuard

from aio_featureservice.spatial import EsriJsonDict


__docformat__ = "google"
__all__ = (
    "ClientError",
    "ServiceError",
    "ResponseError",
    "EditError",
    "UnexpectedResultError",
    "is_edit_error",
    "is_response_error",
    "is_service_error",
    "is_unexpected_result",
)


MSG_FEATURES_UNDEFINED = "features are undefined"
MSG_BODY_UNPARSABLE = "Response body was null or could not be parsed"
MSG_RESULTS_UNEXPECTED = "Results object not found or is not as expected"
MSG_UNEXPECTED_RESULT = "Feature service error: unexpected result"


class ClientError(Exception):
    """Base exception for failed feature service requests."""


@dataclass(kw_only=True)
class ServiceError(ClientError):
    """
    The feature service responded to a query with an error object.

    Attributes:
        message: the error message provided by the service
        code: the error code provided by the service, usually an HTTP status code
        details: additional error messages provided by the service, if any
    """

    message: str | None
    code: int | None = None
    details: list[str] | None = None

    def __str__(self) -> str:
        if self.code is None:
            return f"{self.message}"
        return f"{self.message} ({self.code})"


@dataclass(kw_only=True)
class ResponseError(ClientError):
    """
    Unexpected response.

    The response lacks the structure we expect: a query response without features,
    or an edit response that could not be parsed, or that has no result. This signals
    a mismatch between this client and the service, rather than a failed operation.

    Attributes:
        message: describes what is missing
        body: the response body, either the raw text or the parsed JSON
    """

    message: str
    body: Any = None

    def __str__(self) -> str:
        return self.message


@dataclass(kw_only=True)
class EditError(ClientError):
    """
    The feature service failed to add, update, or delete a feature.

    Attributes:
        message: the error description provided by the service
        code: the error code provided by the service
    """

    message: str | None
    code: int | None = None

    def __str__(self) -> str:
        if self.code is None:
            return f"{self.message}"
        return f"{self.message} ({self.code})"


@dataclass(kw_only=True)
class UnexpectedResultError(ClientError):
    """
    The result of an edit indicated neither success nor failure.

    Attributes:
        message: a generic error message
        result: the result object as it was received
    """

    message: str = MSG_UNEXPECTED_RESULT
    result: Any = None

    def __str__(self) -> str:
        return f"{self.message}: {self.result!r}"


def _raise_for_query_error(body: Any) -> None:
    """
    Raise a ``ServiceError`` if there is an error object in a query response.

    Raises:
        ServiceError: if the body contains an error object
    """
    if not isinstance(body, dict) or not body.get("error"):
        return

    error = body["error"]
    if not isinstance(error, dict):
        raise ServiceError(message=str(error))

    raise ServiceError(
        message=error.get("message"),
        code=error.get("code"),
        details=error.get("details"),
    )


def _features_or_raise(body: Any) -> list[EsriJsonDict]:
    """
    Extract the features of a query response.

    Raises:
        ServiceError: if the body contains an error object
        ResponseError: if the body contains no list of features
    """
    _raise_for_query_error(body)

    features = body.get("features") if isinstance(body, dict) else None
    if not isinstance(features, list):
        raise ResponseError(message=MSG_FEATURES_UNDEFINED, body=body)

    return features


def _parse_edit_response(text: str | None, logger: logging.Logger) -> Any:
    """
    Parse the text of an edit response.

    Raises:
        ResponseError: if there is no body, or if it is not JSON, or if it is a falsy JSON
                       value: ``null``, ``false``, ``0`` or ``""``
    """
    parsed = None

    if text:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as err:
            logger.debug(f"{MSG_BODY_UNPARSABLE}: {text!r}")
            raise ResponseError(message=MSG_BODY_UNPARSABLE, body=text) from err

    # empty arrays and objects are not rejected here
    if not parsed and not isinstance(parsed, dict | list):
        logger.debug(f"{MSG_BODY_UNPARSABLE}: {text!r}")
        raise ResponseError(message=MSG_BODY_UNPARSABLE, body=text)

    logger.debug(f"response body as JSON: {parsed!r}")
    return parsed


def _edit_result_or_raise(text: str | None, logger: logging.Logger) -> None:
    """
    Check the response of an ``addFeatures``, ``updateFeatures`` or ``deleteFeatures`` request.

    The response has a single key, one of ``addResults``, ``updateResults``, or
    ``deleteResults``, which we do not distinguish. Since requests always contain a single
    feature, we expect exactly one result.

    Raises:
        ResponseError: if the body could not be parsed, or does not contain a result
        EditError: if the result has an error object
        UnexpectedResultError: if the result is neither successful nor has an error object
    """
    body = _parse_edit_response(text, logger)

    results = next(iter(body.values()), None) if isinstance(body, dict) else None
    if not isinstance(results, list) or not results:
        logger.debug(f"{MSG_RESULTS_UNEXPECTED}: {results!r}")
        raise ResponseError(message=MSG_RESULTS_UNEXPECTED, body=body)

    result = results[0]
    if not isinstance(result, dict):
        _raise_unexpected_result(result, logger)

    if result.get("success"):
        logger.debug("success")
        return

    if error := result.get("error"):
        logger.debug(f"received error: {error!r}")
        if not isinstance(error, dict):
            raise EditError(message=str(error))
        raise EditError(message=error.get("description"), code=error.get("code"))

    _raise_unexpected_result(result, logger)


def _raise_unexpected_result(result: Any, logger: logging.Logger) -> NoReturn:
    logger.error(f"feature service responded with a result that cannot be handled: {result!r}")
    raise UnexpectedResultError(result=result)


def is_service_error(err: BaseException | None) -> TypeGuard[ServiceError]:
    """``True`` if this is a ``ServiceError``."""
    return isinstance(err, ServiceError)


def is_response_error(err: BaseException | None) -> TypeGuard[ResponseError]:
    """``True`` if this is a ``ResponseError``."""
    return isinstance(err, ResponseError)


def is_edit_error(err: BaseException | None) -> TypeGuard[EditError]:
    """``True`` if this is an ``EditError``."""
    return isinstance(err, EditError)


def is_unexpected_result(err: BaseException | None) -> TypeGuard[UnexpectedResultError]:
    """``True`` if this is an ``UnexpectedResultError``."""
    return isinstance(err, UnexpectedResultError)
