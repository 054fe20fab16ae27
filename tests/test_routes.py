"""API-level tests against the in-memory backend."""

import io

import pytest
from httpx import AsyncClient
from PIL import Image


def _png_bytes(width: int = 1200, height: int = 600) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=(10, 120, 10)).save(buf, format="PNG")
    return buf.getvalue()


def _auth(user) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


CAFE_FORM = {
    "name": "Café A",
    "description": "Espresso and pastries",
    "tags": ["Wifi", "Open Late"],
    "lng": "-0.1",
    "lat": "51.5",
    "address": "1 Southwark St, London",
}


async def _create(client: AsyncClient, user, data=None, files=None):
    return await client.post("/v1/stores", data=data or CAFE_FORM, files=files, headers=_auth(user))


@pytest.mark.asyncio
async def test_create_store_with_photo(client: AsyncClient, wes, uploads_dir):
    response = await _create(
        client, wes, files={"photo": ("cafe.png", _png_bytes(), "image/png")}
    )

    assert response.status_code == 201
    data = response.json()
    assert data["slug"] == "cafe-a"
    assert data["author"] == wes.id
    assert data["tags"] == ["Wifi", "Open Late"]
    assert data["location"] == {
        "type": "Point",
        "coordinates": [-0.1, 51.5],
        "address": "1 Southwark St, London",
    }
    assert data["photo"].endswith(".png")
    with Image.open(uploads_dir / data["photo"]) as stored:
        assert stored.width == 800


@pytest.mark.asyncio
async def test_create_requires_requester(client: AsyncClient):
    response = await client.post("/v1/stores", data=CAFE_FORM)

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"


@pytest.mark.asyncio
async def test_malformed_page_number_is_validation_error(client: AsyncClient):
    response = await client.get("/v1/stores/page/0")

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_create_rejects_non_image_upload(client: AsyncClient, wes, uploads_dir):
    response = await _create(
        client, wes, files={"photo": ("notes.txt", b"hello", "text/plain")}
    )

    assert response.status_code == 415
    assert response.json()["error"]["code"] == "UNSUPPORTED_MEDIA_TYPE"
    assert not uploads_dir.exists()
    assert (await client.get("/v1/stores")).json()["count"] == 0


@pytest.mark.asyncio
async def test_create_missing_location_is_validation_error(client: AsyncClient, wes):
    response = await _create(client, wes, data={"name": "No Where"})

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert "location" in error["detail"]["fields"]


@pytest.mark.asyncio
async def test_update_by_other_user_is_forbidden(client: AsyncClient, wes, ada):
    store = (await _create(client, wes)).json()

    response = await client.post(
        f"/v1/stores/{store['id']}", data={"name": "Mine now"}, headers=_auth(ada)
    )
    edit = await client.get(f"/v1/stores/{store['id']}/edit", headers=_auth(ada))

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "NOT_OWNER"
    assert edit.status_code == 403
    assert (await client.get("/v1/store/cafe-a")).json()["name"] == "Café A"


@pytest.mark.asyncio
async def test_update_by_author(client: AsyncClient, wes):
    store = (await _create(client, wes)).json()

    response = await client.post(
        f"/v1/stores/{store['id']}",
        data={"name": "Café B", "lng": "-0.2", "lat": "51.6"},
        headers=_auth(wes),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["slug"] == "cafe-b"
    assert data["tags"] == ["Wifi", "Open Late"]
    assert data["location"]["coordinates"] == [-0.2, 51.6]


@pytest.mark.asyncio
async def test_page_past_the_end_redirects_to_last_page(client: AsyncClient, wes):
    for i in range(5):
        await _create(client, wes, data={**CAFE_FORM, "name": f"Store {i}"})

    response = await client.get("/v1/stores/page/9")
    last = await client.get("/v1/stores/page/2")

    assert response.status_code == 302
    assert response.headers["location"].endswith("/v1/stores/page/2")
    assert last.status_code == 200
    assert last.json()["pages"] == 2
    assert len(last.json()["stores"]) == 1


@pytest.mark.asyncio
async def test_first_page_without_stores(client: AsyncClient):
    response = await client.get("/v1/stores")

    assert response.status_code == 200
    assert response.json() == {"stores": [], "count": 0, "page": 1, "pages": 0}


@pytest.mark.asyncio
async def test_tags(client: AsyncClient, wes):
    await _create(client, wes)

    response = await client.get("/v1/tags/Wifi")

    data = response.json()
    assert data["tag"] == "Wifi"
    assert data["tags"] == [{"tag": "Open Late", "count": 1}, {"tag": "Wifi", "count": 1}]
    assert [s["slug"] for s in data["stores"]] == ["cafe-a"]


@pytest.mark.asyncio
async def test_search(client: AsyncClient, wes):
    await _create(client, wes)

    hits = (await client.get("/v1/search", params={"q": "espresso"})).json()
    misses = (await client.get("/v1/search", params={"q": "sushi"})).json()

    assert [h["slug"] for h in hits] == ["cafe-a"]
    assert hits[0]["score"] > 0
    assert misses == []


@pytest.mark.asyncio
async def test_near(client: AsyncClient, wes):
    await _create(client, wes)

    response = await client.get("/v1/stores/near", params={"lng": "-0.1", "lat": "51.5"})

    assert response.status_code == 200
    assert [s["slug"] for s in response.json()] == ["cafe-a"]


@pytest.mark.asyncio
async def test_near_invalid_coordinates(client: AsyncClient):
    response = await client.get("/v1/stores/near", params={"lng": "east", "lat": "51.5"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_COORDINATES"



@pytest.mark.asyncio
@pytest.mark.parametrize("params", [{"lng": "0"}, {"lat": "0"}, {}])
async def test_near_missing_coordinate(client: AsyncClient, params):
    response = await client.get("/v1/stores/near", params=params)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_COORDINATES"


@pytest.mark.asyncio
async def test_heart_toggle(client: AsyncClient, wes, ada):
    store = (await _create(client, wes)).json()

    first = await client.post(f"/v1/stores/{store['id']}/heart", headers=_auth(ada))
    hearts = await client.get("/v1/hearts", headers=_auth(ada))
    second = await client.post(f"/v1/stores/{store['id']}/heart", headers=_auth(ada))

    assert first.json() == {"hearts": [store["id"]]}
    assert [s["slug"] for s in hearts.json()] == ["cafe-a"]
    assert second.json() == {"hearts": []}
