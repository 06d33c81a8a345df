import httpx
import pytest

from trajgen.core.errors import RoutingFailure
from trajgen.services.routing import OpenRouteServiceRouter, parse_route
from fakes import TOKYO_STATION, SHIBUYA

ORS_BODY = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "geometry": {
                "type": "LineString",
                "coordinates": [[139.7671, 35.6812], [139.7400, 35.6700], [139.7016, 35.6580]],
            },
            "properties": {"summary": {"distance": 7234.5, "duration": 901.2}},
        }
    ],
}


def make_router(handler, api_key="test-key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenRouteServiceRouter(api_key=api_key, base_url="https://ors.test/", client=client)


async def test_route_request_and_parsing():
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(200, json=ORS_BODY)

    route = await make_router(handler).route(TOKYO_STATION, SHIBUYA)

    request = seen["request"]
    assert request.url.path == "/v2/directions/driving-car"
    assert request.url.params["start"] == "139.7671,35.6812"
    assert request.url.params["end"] == "139.7016,35.658"
    assert request.headers["Authorization"] == "test-key"

    assert route.distance_meters == 7234.5
    assert route.duration_seconds == 901.2
    assert len(route.path) == 3
    assert route.path[0].lat == 35.6812
    assert route.path[0].lng == 139.7671


async def test_upstream_error_message_is_kept():
    def handler(request):
        return httpx.Response(403, json={"error": {"code": 403, "message": "Access to this API has been disallowed"}})

    with pytest.raises(RoutingFailure, match="disallowed"):
        await make_router(handler).route(TOKYO_STATION, SHIBUYA)


async def test_error_without_json_body():
    def handler(request):
        return httpx.Response(500, text="upstream down")

    with pytest.raises(RoutingFailure, match="HTTP 500"):
        await make_router(handler).route(TOKYO_STATION, SHIBUYA)


async def test_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RoutingFailure, match="connection refused"):
        await make_router(handler).route(TOKYO_STATION, SHIBUYA)


async def test_malformed_response():
    def handler(request):
        return httpx.Response(200, json={"features": []})

    with pytest.raises(RoutingFailure, match="Malformed"):
        await make_router(handler).route(TOKYO_STATION, SHIBUYA)


async def test_missing_api_key():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(RoutingFailure, match="API key"):
        await make_router(handler, api_key="").route(TOKYO_STATION, SHIBUYA)


def test_parse_route_needs_two_vertices():
    body = {
        "features": [
            {
                "geometry": {"coordinates": [[139.7671, 35.6812]]},
                "properties": {"summary": {"distance": 0}},
            }
        ]
    }
    with pytest.raises(ValueError):
        parse_route(body)
