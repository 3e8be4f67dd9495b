"""Pytest configuration and fixtures."""

import os
from enum import Enum

import pytest

from facetsearch.backends.memory import MemoryBackend
from facetsearch.catalog import FieldCatalog, SortDirection
from facetsearch.fulltext import FullTextField, WildcardPadding
from facetsearch.parameters import SearchParameter, ValueType


class Country(Enum):
    DENMARK = "DK"
    SPAIN = "ES"
    FRANCE = "FR"


class BasisOfRecord(Enum):
    HUMAN_OBSERVATION = "human observation"
    PRESERVED_SPECIMEN = "preserved specimen"
    FOSSIL_SPECIMEN = "fossil specimen"


class OccurrenceParameter(SearchParameter):
    COUNTRY = ("country", ValueType.ENUM, Country)
    BASIS_OF_RECORD = ("basis_of_record", ValueType.ENUM, BasisOfRecord)
    YEAR = ("year", ValueType.INTEGER)
    ELEVATION = ("elevation", ValueType.DOUBLE)
    EVENT_DATE = ("event_date", ValueType.DATE)
    HAS_COORDINATE = ("has_coordinate", ValueType.BOOLEAN)
    DATASET_KEY = ("dataset_key", ValueType.UUID)
    GEOMETRY = ("geometry", ValueType.GEOMETRY)
    RECORDED_BY = ("recorded_by", ValueType.STRING)
    UNMAPPED = ("unmapped", ValueType.STRING)


OCCURRENCES = [
    {
        "id": "1",
        "title": "Red fox sighting",
        "country": "DENMARK",
        "basisOfRecord": "HUMAN_OBSERVATION",
        "year": 2010,
        "elevation": 12.5,
        "eventDate": "2010-05-04",
        "hasCoordinate": True,
        "recordedBy": ["Ana", "Bo"],
        "coordinates": "POINT (10 56)",
        "internal": "secret",
    },
    {
        "id": "2",
        "title": "Arctic fox skull",
        "country": "DENMARK",
        "basisOfRecord": "PRESERVED_SPECIMEN",
        "year": 2011,
        "elevation": 3.0,
        "eventDate": "2011-10-12",
        "hasCoordinate": True,
        "recordedBy": ["Bo"],
        "coordinates": "POINT (12 55.7)",
        "internal": "secret",
    },
    {
        "id": "3",
        "title": "Iberian lynx",
        "description": "Seen near a fox den",
        "country": "SPAIN",
        "basisOfRecord": "HUMAN_OBSERVATION",
        "year": 2010,
        "elevation": 650.0,
        "eventDate": "2010-10-20",
        "hasCoordinate": True,
        "recordedBy": ["Carmen"],
        "coordinates": "POINT (-3.7 40.4)",
        "internal": "secret",
    },
    {
        "id": "4",
        "title": "Red kite nest",
        "country": "SPAIN",
        "basisOfRecord": "HUMAN_OBSERVATION",
        "year": 2012,
        "elevation": 820.0,
        "eventDate": "2012-03-01",
        "hasCoordinate": False,
        "recordedBy": ["Carmen"],
        "coordinates": "POINT (-4 41)",
        "internal": "secret",
    },
    {
        "id": "5",
        "title": "Fox fossil",
        "country": "FRANCE",
        "basisOfRecord": "PRESERVED_SPECIMEN",
        "year": 2010,
        "elevation": 150.0,
        "eventDate": "2010-12-31",
        "hasCoordinate": True,
        "recordedBy": ["Didier"],
        "coordinates": "POINT (2.35 48.85)",
        "internal": "secret",
    },
    {
        "id": "6",
        "title": "Alpine ibex",
        "country": "FRANCE",
        "basisOfRecord": "HUMAN_OBSERVATION",
        "year": 2013,
        "elevation": 2400.0,
        "eventDate": "2013-07-15",
        "hasCoordinate": True,
        "recordedBy": ["Didier"],
        "coordinates": "POINT (6.8 45.8)",
        "internal": "secret",
    },
]

DENMARK_WKT = "POLYGON ((8 54, 13 54, 13 58, 8 58, 8 54))"


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Isolate environment variables for each test."""
    original_env = os.environ.copy()

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def catalog() -> FieldCatalog:
    """Catalog mapping every occurrence parameter but UNMAPPED."""
    P = OccurrenceParameter
    return (
        FieldCatalog.builder()
        .map(P.COUNTRY, "country", cardinality=250)
        .map(P.BASIS_OF_RECORD, "basisOfRecord", cardinality=10)
        .map(P.YEAR, "year", cardinality=300)
        .map(P.ELEVATION, "elevation")
        .map(P.EVENT_DATE, "eventDate")
        .map(P.HAS_COORDINATE, "hasCoordinate", cardinality=2)
        .map(P.DATASET_KEY, "datasetKey")
        .map(P.GEOMETRY, "coordinates", spatial=True)
        .map(P.RECORDED_BY, "recordedBy")
        .exclude("internal")
        .sort_by("year", SortDirection.DESC)
        .highlight("title", "description")
        .full_text(
            FullTextField(
                "title",
                exact_match_boost=2.0,
                partial_matching=WildcardPadding.RIGHT,
                partial_match_boost=0.5,
            ),
            FullTextField("description"),
        )
        .build()
    )


@pytest.fixture
def occurrences() -> list[dict]:
    """Sample occurrence documents."""
    return [dict(document) for document in OCCURRENCES]


@pytest.fixture
def memory_backend(occurrences) -> MemoryBackend:
    """Memory backend holding the sample occurrences."""
    backend = MemoryBackend()
    backend.index_batch(occurrences)
    return backend
