import pytest

from recordshop.core.enums import RecordStatus
from recordshop.services.discogs.mapping import ListingMappingError, extract_cover_image, map_listing

from tests.mocks.mock_gateway import make_listing


def test_map_listing_full():
    listing = make_listing(
        172723812, 5299823, price=17.5,
        comments="Shrink intact", location="Bin A3", weight=230,
    )
    listing["release"]["images"] = [
        {"type": "secondary", "resource_url": "https://img.example.com/back.jpg"},
        {"type": "primary", "resource_url": "https://img.example.com/front.jpg"},
    ]

    payload = map_listing(listing)

    assert payload.discogs_listing_id == 172723812
    assert payload.discogs_release_id == 5299823
    assert payload.price == 17.5
    assert payload.title == "Release 5299823"
    assert payload.artist == "Test Artist"
    assert payload.notes == "Shrink intact"
    assert payload.location == "Bin A3"
    assert payload.weight == 230
    assert payload.cover_image == "https://img.example.com/front.jpg"
    assert payload.quantity == 1
    assert payload.status == RecordStatus.FOR_SALE


def test_map_listing_defaults_for_missing_release_details():
    listing = {"id": 1, "price": {"value": 9.99}, "release": {"id": 2}}

    payload = map_listing(listing)

    assert payload.title == "Unknown Title"
    assert payload.artist == "Unknown Artist"
    assert payload.label == "Unknown Label"
    assert payload.cover_image is None
    assert payload.genres == []


def test_map_listing_title_falls_back_to_description():
    listing = {"id": 1, "price": 5, "release": {"id": 2, "description": "Artist - Album (LP)"}}

    assert map_listing(listing).title == "Artist - Album (LP)"


def test_map_listing_scalar_price_and_estimated_weight():
    listing = {"id": 1, "price": "12.00", "estimated_weight": 180, "release": {"id": 2}}

    payload = map_listing(listing)

    assert payload.price == 12.0
    assert payload.weight == 180


@pytest.mark.parametrize("listing, reason", [
    ({"price": {"value": 5}, "release": {"id": 2}}, "missing listing id"),
    ({"id": 1, "price": {"value": 5}, "release": {}}, "missing release id"),
    ({"id": 1, "price": {"value": 5}}, "missing release id"),
    ({"id": 1, "release": {"id": 2}}, "missing price"),
    ({"id": 1, "price": {"value": None}, "release": {"id": 2}}, "missing price"),
    ({"id": 1, "price": {"value": "abc"}, "release": {"id": 2}}, "unparseable price"),
])
def test_map_listing_rejects_incomplete_listings(listing, reason):
    with pytest.raises(ListingMappingError) as exc_info:
        map_listing(listing)
    assert reason in str(exc_info.value)


def test_extract_cover_image_fallbacks():
    assert extract_cover_image({"cover_image": "https://img.example.com/c.jpg"}) == "https://img.example.com/c.jpg"
    assert extract_cover_image({"thumbnail": "https://img.example.com/t.jpg"}) == "https://img.example.com/t.jpg"
    assert extract_cover_image(
        {"images": [{"type": "primary", "uri": "https://img.example.com/u.jpg"}]}
    ) == "https://img.example.com/u.jpg"
    assert extract_cover_image({}) is None
