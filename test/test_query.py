import asyncio
import json
import logging
import re

from aio_featureservice import FeatureService
from aio_featureservice.error import ResponseError, ServiceError
from aio_featureservice.esri import FeatureConverter

import aiohttp
import geojson
import pytest


URL = "https://example.com/arcgis/rest/services/Test/FeatureServer/0"
URL_QUERY = re.compile(r"^https://example\.com/arcgis/rest/services/Test/FeatureServer/0/query(\?.*)?$")

DEFAULT_PARAMS = {
    "returnCountsOnly": "false",
    "returnIdsOnly": "false",
    "returnGeometry": "true",
    "outSR": "4326",
    "outFields": "*",
    "f": "json",
}


def sent_params(mock_response) -> list[dict]:
    return [
        call.kwargs["params"]
        for (method, _), calls in mock_response.requests.items()
        if method == "GET"
        for call in calls
    ]


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_default_params(mock_response):
    mock_response.get(url=URL_QUERY, payload={"features": []})

    c = FeatureService({"url": URL})
    actual = await c.get({"where": "1=1"})
    await c.close()

    assert actual == {"type": "FeatureCollection", "features": []}
    assert sent_params(mock_response) == [{**DEFAULT_PARAMS, "where": "1=1"}]


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_query_url(mock_response):
    mock_response.get(url=URL_QUERY, payload={"features": []})

    c = FeatureService({"url": URL})
    _ = await c.get()
    await c.close()

    ((_, url),) = mock_response.requests.keys()
    assert str(url).startswith(f"{URL}/query?")


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_given_params_take_precedence(mock_response):
    mock_response.get(url=URL_QUERY, payload={"features": []})

    c = FeatureService({"url": URL, "token": "secret"})
    _ = await c.get({"outSR": "3857", "returnGeometry": False, "token": "mine"})
    await c.close()

    (params,) = sent_params(mock_response)
    assert params["outSR"] == "3857"
    assert params["returnGeometry"] == "false"
    assert params["outFields"] == "*"
    assert params["token"] == "secret"


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_configured_result_options(mock_response):
    mock_response.get(url=URL_QUERY, payload={"features": []})

    c = FeatureService(
        {
            "url": URL,
            "defaultResultOptions": {"outFields": "OBJECTID,NAME", "where": "1=1"},
        }
    )
    _ = await c.get({"where": "NAME = 'x'"})
    await c.close()

    (params,) = sent_params(mock_response)
    assert params == {**DEFAULT_PARAMS, "outFields": "OBJECTID,NAME", "where": "NAME = 'x'"}


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_unconfigured_token_drops_given_token(mock_response):
    mock_response.get(url=URL_QUERY, payload={"features": []})

    c = FeatureService({"url": URL})
    _ = await c.get({"token": "mine"})
    await c.close()

    (params,) = sent_params(mock_response)
    assert "token" not in params


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_given_params_are_not_modified(mock_response):
    mock_response.get(url=URL_QUERY, payload={"features": []})

    params = {"where": "1=1", "token": "mine"}

    c = FeatureService({"url": URL, "token": "secret"})
    _ = await c.get(params)
    await c.close()

    assert params == {"where": "1=1", "token": "mine"}
    assert dict(c.config.default_result_options) == {
        "returnCountsOnly": False,
        "returnIdsOnly": False,
        "returnGeometry": True,
        "outSR": "4326",
        "outFields": "*",
        "f": "json",
    }


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_geometry_filter_is_sent_as_json(mock_response):
    mock_response.get(url=URL_QUERY, payload={"features": []})

    envelope = {"xmin": 0, "ymin": 0, "xmax": 1, "ymax": 1}

    c = FeatureService({"url": URL})
    _ = await c.get({"geometry": envelope, "geometryType": "esriGeometryEnvelope"})
    await c.close()

    (params,) = sent_params(mock_response)
    assert json.loads(params["geometry"]) == envelope


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_features(mock_response):
    body = {
        "objectIdFieldName": "OBJECTID",
        "features": [
            {"geometry": {"x": 13.4, "y": 52.5}, "attributes": {"OBJECTID": 1, "NAME": "a"}},
            {"geometry": {"x": 9.9, "y": 53.5}, "attributes": {"OBJECTID": 2, "NAME": "b"}},
        ],
    }
    mock_response.get(url=URL_QUERY, payload=body)

    c = FeatureService({"url": URL})
    actual = await c.get({"where": "1=1"})
    await c.close()

    expected = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "id": 1,
                "geometry": {"type": "Point", "coordinates": [13.4, 52.5]},
                "properties": {"OBJECTID": 1, "NAME": "a"},
            },
            {
                "type": "Feature",
                "id": 2,
                "geometry": {"type": "Point", "coordinates": [9.9, 53.5]},
                "properties": {"OBJECTID": 2, "NAME": "b"},
            },
        ],
    }

    assert actual == expected
    assert geojson.loads(json.dumps(actual)).is_valid


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_features_with_converter(mock_response):
    class NameConverter(FeatureConverter):
        def to_geojson(self, feature):
            return {"type": "Feature", "geometry": None, "properties": feature["attributes"]}

        def to_esri(self, feature):
            raise AssertionError

    body = {"features": [{"attributes": {"NAME": "a"}}, {"attributes": {"NAME": "b"}}]}
    mock_response.get(url=URL_QUERY, payload=body)

    c = FeatureService({"url": URL}, converter=NameConverter())
    actual = await c.get()
    await c.close()

    assert [f["properties"]["NAME"] for f in actual["features"]] == ["a", "b"]


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_service_error(mock_response):
    body = {"error": {"message": "m", "code": 1, "details": ["d"]}}
    mock_response.get(url=URL_QUERY, payload=body)

    c = FeatureService({"url": URL})

    with pytest.raises(ServiceError) as err:
        await c.get({"where": "nonsense"})

    await c.close()

    assert err.value.message == "m"
    assert err.value.code == 1
    assert err.value.details == ["d"]
    assert str(err.value) == "m (1)"


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_service_error_takes_precedence(mock_response):
    body = {
        "error": {"message": "Invalid query", "code": 400, "details": []},
        "features": [],
    }
    mock_response.get(url=URL_QUERY, payload=body, status=400)

    c = FeatureService({"url": URL})

    with pytest.raises(ServiceError) as err:
        await c.get()

    await c.close()

    assert err.value.code == 400


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
@pytest.mark.parametrize(
    "body",
    [
        {},
        {"features": None},
        {"features": {"a": 1}},
        {"features": "nonsense"},
        [],
        None,
    ],
)
async def test_features_undefined(mock_response, body):
    mock_response.get(url=URL_QUERY, body=json.dumps(body), content_type="application/json")

    c = FeatureService({"url": URL})

    with pytest.raises(ResponseError, match="features are undefined") as err:
        await c.get()

    await c.close()

    assert err.value.body == body


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_features_undefined_in_html(mock_response):
    body = "<html><body>Bad Gateway</body></html>"
    mock_response.get(url=URL_QUERY, body=body, status=502, content_type="text/html")

    c = FeatureService({"url": URL})

    with pytest.raises(ResponseError, match="features are undefined") as err:
        await c.get()

    await c.close()

    assert err.value.body == body


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_transport_error_is_not_wrapped(mock_response):
    cause = aiohttp.ClientConnectionError("connection refused")
    mock_response.get(url=URL_QUERY, exception=cause)

    c = FeatureService({"url": URL})

    with pytest.raises(aiohttp.ClientConnectionError) as err:
        await c.get()

    await c.close()

    assert err.value is cause


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_timeout_is_not_wrapped(mock_response):
    mock_response.get(url=URL_QUERY, exception=asyncio.TimeoutError())

    c = FeatureService({"url": URL})

    with pytest.raises(asyncio.TimeoutError):
        await c.get()

    await c.close()


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_missing_url():
    c = FeatureService({"token": "secret"})

    with pytest.raises(ValueError, match="'url' is not configured"):
        await c.get()

    await c.close()


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_concurrent_queries(mock_response):
    mock_response.get(url=URL_QUERY, payload={"features": []}, repeat=True)

    async with FeatureService({"url": URL}) as c:
        results = await asyncio.gather(*(c.get({"where": f"OBJECTID = {i}"}) for i in range(3)))

    assert all(r == {"type": "FeatureCollection", "features": []} for r in results)
    assert sorted(p["where"] for p in sent_params(mock_response)) == [
        "OBJECTID = 0",
        "OBJECTID = 1",
        "OBJECTID = 2",
    ]


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_injected_session_is_not_closed(mock_response):
    mock_response.get(url=URL_QUERY, payload={"features": []})

    async with aiohttp.ClientSession() as session:
        c = FeatureService({"url": URL}, session=session)
        _ = await c.get()
        await c.close()

        assert not session.closed


@pytest.mark.asyncio()
@pytest.mark.xdist_group(name="fast")
async def test_logging(mock_response, caplog):
    mock_response.get(url=URL_QUERY, payload={"features": []})

    logger = logging.getLogger("test_query")
    caplog.set_level(logging.DEBUG, logger="test_query")

    c = FeatureService({"url": URL, "token": "secret"}, logger=logger)
    _ = await c.get({"where": "1=1"})
    await c.close()

    assert "invoking get" in caplog.text
    assert '"where": "1=1"' in caplog.text
    assert '"token": "secret"' in caplog.text
    assert '"features": []' in caplog.text
