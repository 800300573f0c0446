import os
import sys

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from models import GeocodingResult  # noqa: E402
from property_store import DataFrameStore  # noqa: E402

KB = "kb-test"

LEEDS = (53.7997, -1.5492)
BRISTOL = (51.4545, -2.5879)


def listing(i, **kw):
    row = {
        "id": f"p{i}",
        "transaction_type": "rent",
        "price": 1000,
        "beds": 2,
        "baths": 1,
        "property_type": "flat",
        "furnished_type": "furnished",
        "has_nearby_station": True,
        "street_address": "Park Row",
        "city": "Leeds",
        "district": "City Centre",
        "county": "West Yorkshire",
        "postcode": "LS1 5AB",
        "full_address": "Park Row, Leeds LS1 5AB",
        "latitude": LEEDS[0],
        "longitude": LEEDS[1],
        "added_on": f"2024-05-{i + 1:02d}T10:00:00",
    }
    row.update(kw)
    return row


@pytest.fixture
def make_store():
    def _make(rows, knowledge_base_id=KB):
        return DataFrameStore.from_records(rows, knowledge_base_id=knowledge_base_id)

    return _make


@pytest.fixture
def city_store(make_store):
    rows = [listing(i, price=900 + i * 100) for i in range(4)]
    rows += [
        listing(
            10 + i,
            city="Bristol",
            district="Clifton",
            county="Avon",
            street_address="Whiteladies Road",
            full_address="Whiteladies Road, Bristol BS8 2PY",
            postcode="BS8 2PY",
            latitude=BRISTOL[0],
            longitude=BRISTOL[1],
        )
        for i in range(2)
    ]
    return make_store(rows)


class FakeGeocoder:
    def __init__(self, result=None, exc=None):
        self.result = result
        self.exc = exc
        self.calls = []

    def geocode(self, text):
        self.calls.append(text)
        if self.exc is not None:
            raise self.exc
        return self.result


@pytest.fixture
def leeds_geocoder():
    return FakeGeocoder(GeocodingResult(latitude=LEEDS[0], longitude=LEEDS[1], formatted_address="Leeds, UK"))
