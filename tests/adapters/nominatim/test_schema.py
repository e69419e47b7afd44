from __future__ import annotations

from importflow.adapters.nominatim import NominatimPlace, NominatimSearchResponse


def test_search_response_parses_string_coordinates() -> None:
    response = NominatimSearchResponse.model_validate(
        [
            {
                "place_id": 1,
                "lat": "48.8566",
                "lon": "2.3522",
                "display_name": "Paris",
                "addresstype": "city",
                "unknown": "ignored",
            }
        ]
    )

    (place,) = response.root
    assert place.lat == 48.8566
    assert place.lon == 2.3522
    assert place.address_type == "city"


def test_confidence_is_clamped_importance() -> None:
    assert NominatimPlace(lat=0, lon=0, importance=1.7).confidence == 1.0
    assert NominatimPlace(lat=0, lon=0, importance=-0.2).confidence == 0.0
    assert NominatimPlace(lat=0, lon=0, importance=0.4).confidence == 0.4
    assert NominatimPlace(lat=0, lon=0).confidence == 0.5
