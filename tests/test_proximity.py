import math

import pytest

from app.services.errors import InvalidCoordinates
from app.services.proximity import EARTH_RADIUS_M, find_nearby, haversine_m, parse_coordinates
from app.stores.base import GeoPoint


def _lat_offset(metres: float) -> float:
    """Degrees of latitude spanning `metres` due north of the equator."""
    return math.degrees(metres / EARTH_RADIUS_M)


async def _add_at(backend, author_id, name, lng, lat):
    return await backend.insert_store(
        name=name, slug=name.lower(), author_id=author_id, location=GeoPoint(lng=lng, lat=lat)
    )


def test_haversine_matches_known_distance():
    assert haversine_m(0, 0, 0, _lat_offset(5_000)) == pytest.approx(5_000, rel=1e-9)
    # London -> Paris, roughly 344 km.
    assert haversine_m(-0.1278, 51.5074, 2.3522, 48.8566) == pytest.approx(343_500, rel=0.01)


@pytest.mark.asyncio
async def test_near_includes_close_and_excludes_far(backend, wes):
    far = await _add_at(backend, wes.id, "far", 0, _lat_offset(15_000))
    mid = await _add_at(backend, wes.id, "mid", 0, _lat_offset(8_000))
    close = await _add_at(backend, wes.id, "close", 0, _lat_offset(5_000))

    stores = await find_nearby(backend, 0, 0)

    assert [s.id for s in stores] == [close.id, mid.id]
    assert far.id not in {s.id for s in stores}


@pytest.mark.asyncio
async def test_near_is_capped_at_ten(backend, wes):
    for i in range(12):
        await _add_at(backend, wes.id, f"s{i}", 0, _lat_offset(100 * (12 - i)))

    stores = await find_nearby(backend, 0, 0)

    assert len(stores) == 10
    assert stores[0].name == "s11"


@pytest.mark.asyncio
async def test_near_accepts_numeric_strings(backend, wes):
    store = await _add_at(backend, wes.id, "here", -0.1, 51.5)

    assert await find_nearby(backend, "-0.1", "51.5") == [store]


@pytest.mark.parametrize(
    "lng, lat",
    [("abc", "0"), ("0", None), ("nan", "0"), ("inf", "0"), ("181", "0"), ("0", "-91")],
)
def test_parse_coordinates_rejects_invalid(lng, lat):
    with pytest.raises(InvalidCoordinates):
        parse_coordinates(lng, lat)


def test_parse_coordinates_returns_floats():
    assert parse_coordinates("-0.1", 51.5) == (-0.1, 51.5)
