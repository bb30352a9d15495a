"""Unit tests for request parsing."""

import pytest

from astro_cache.core.models import (
    BirthData,
    RequestError,
    parse_birth_request,
    parse_date,
    parse_time,
    parse_transit_request,
)


def lookup_istanbul(lat, lng):
    return "Europe/Istanbul"


def lookup_fails(lat, lng):
    raise LookupError("no zone")


class TestParseBirthRequest:
    """Test /api/calculate body validation."""

    def test_valid_payload(self, birth_payload):
        """A complete body yields BirthData with the zone's offset."""
        birth = parse_birth_request(birth_payload, lookup_fails)

        assert birth == BirthData(
            year=1990,
            month=5,
            day=15,
            hours=14,
            minutes=30,
            latitude=41.0082,
            longitude=28.9784,
            timezone=3.0,
        )

    def test_timezone_lookup_when_annotation_missing(self, birth_payload):
        """Without annotations the engine's zone lookup is used."""
        del birth_payload["location"]["annotations"]
        calls = []

        def lookup(lat, lng):
            calls.append((lat, lng))
            return "UTC"

        birth = parse_birth_request(birth_payload, lookup)

        assert birth.timezone == 0.0
        assert calls == [(41.0082, 28.9784)]

    def test_daylight_saving_offset(self, birth_payload):
        """Offsets are computed for the local date."""
        birth_payload["location"]["annotations"]["timezone"]["name"] = "Europe/Berlin"
        summer = parse_birth_request(birth_payload, lookup_fails)
        birth_payload["date"] = "1990-01-15"
        winter = parse_birth_request(birth_payload, lookup_fails)

        assert (summer.timezone, winter.timezone) == (2.0, 1.0)

    @pytest.mark.parametrize(
        "field,message",
        [
            ("date", "Birth date is required."),
            ("time", "Birth time is required."),
            ("location", "Birth place is required."),
        ],
    )
    def test_missing_fields(self, birth_payload, field, message):
        """Each required field has its own message."""
        del birth_payload[field]

        with pytest.raises(RequestError) as exc_info:
            parse_birth_request(birth_payload, lookup_istanbul)

        assert exc_info.value.message == message

    def test_missing_coordinates(self, birth_payload):
        """Locations without geometry are rejected."""
        birth_payload["location"]["geometry"] = {"lat": 41.0}

        with pytest.raises(RequestError, match="coordinates"):
            parse_birth_request(birth_payload, lookup_istanbul)

    def test_zero_coordinates_are_valid(self, birth_payload):
        """0,0 is a real place."""
        birth_payload["location"] = {"geometry": {"lat": 0, "lng": 0}}

        birth = parse_birth_request(birth_payload, lambda lat, lng: "UTC")

        assert (birth.latitude, birth.longitude) == (0.0, 0.0)

    def test_lookup_failure_is_request_error(self, birth_payload):
        """An unresolvable timezone is reported to the client."""
        del birth_payload["location"]["annotations"]

        with pytest.raises(RequestError, match="timezone"):
            parse_birth_request(birth_payload, lookup_fails)

    def test_unknown_zone_name(self, birth_payload):
        """Bogus zone names are rejected."""
        birth_payload["location"]["annotations"]["timezone"]["name"] = "Mars/Olympus"

        with pytest.raises(RequestError):
            parse_birth_request(birth_payload, lookup_istanbul)

    def test_non_object_body(self):
        """Lists and scalars are rejected."""
        with pytest.raises(RequestError):
            parse_birth_request([1, 2], lookup_istanbul)

    def test_error_to_dict(self):
        """Errors render as error/details JSON."""
        assert RequestError("Bad.", "Why.").to_dict() == {"error": "Bad.", "details": "Why."}
        assert RequestError("Bad.").to_dict() == {"error": "Bad."}


class TestDateAndTime:
    """Test date/time parsing."""

    def test_parse_date(self):
        assert parse_date("1990-5-7") == (1990, 5, 7)

    @pytest.mark.parametrize("raw", ["1990/05/15", "1990-02-30", "15-05-1990", ""])
    def test_invalid_dates(self, raw):
        with pytest.raises(RequestError):
            parse_date(raw)

    def test_parse_time_with_seconds(self):
        assert parse_time("07:05:59") == (7, 5)

    @pytest.mark.parametrize("raw", ["24:00", "12:60", "noon"])
    def test_invalid_times(self, raw):
        with pytest.raises(RequestError):
            parse_time(raw)


class TestCacheFields:
    """Test the normalized cache key input."""

    def test_equivalent_requests_share_fields(self, birth_payload):
        """Coordinates are rounded so float noise does not split keys."""
        first = parse_birth_request(birth_payload, lookup_istanbul)
        birth_payload["location"]["geometry"]["lat"] = 41.00820000001
        second = parse_birth_request(birth_payload, lookup_istanbul)

        assert first.cache_fields() == second.cache_fields()
        assert first.cache_fields()["chartType"] == "tropical"


class TestParseTransitRequest:
    """Test /api/transit body validation."""

    def test_defaults_to_noon(self):
        """A bare date means 12:00 local time."""
        query = parse_transit_request({"transitDate": "2024-03-01", "latitude": 1, "longitude": 2}, lookup_istanbul)

        assert (query.birth.hours, query.birth.minutes) == (12, 0)
        assert query.birth.timezone == 3.0
        assert query.natal_chart is None

    def test_explicit_time(self):
        query = parse_transit_request({"transitDate": "2024-03-01T08:15"}, lookup_istanbul)

        assert (query.birth.hours, query.birth.minutes) == (8, 15)

    def test_coordinates_from_natal_chart(self, chart):
        """Missing coordinates fall back to the natal birth place."""
        chart["birthInfo"] = {"latitude": 52.5, "longitude": 13.4}

        query = parse_transit_request({"transitDate": "2024-03-01", "natalChart": chart}, lookup_istanbul)

        assert (query.birth.latitude, query.birth.longitude) == (52.5, 13.4)
        assert query.natal_chart is chart

    def test_coordinates_default_to_zero(self):
        query = parse_transit_request({"transitDate": "2024-03-01"}, lookup_istanbul)

        assert (query.birth.latitude, query.birth.longitude) == (0.0, 0.0)

    def test_timezone_failure_uses_utc(self):
        """An unresolvable zone is not fatal for transits."""
        query = parse_transit_request({"transitDate": "2024-03-01"}, lookup_fails)

        assert query.birth.timezone == 0.0

    def test_missing_date(self):
        with pytest.raises(RequestError, match="Transit date"):
            parse_transit_request({}, lookup_istanbul)


class TestMalformedNesting:
    """Nested objects of the wrong type are client errors."""

    def test_timezone_annotation_as_string(self, birth_payload):
        birth_payload["location"]["annotations"] = {"timezone": "Europe/Istanbul"}

        with pytest.raises(RequestError, match="Malformed"):
            parse_birth_request(birth_payload, lookup_istanbul)

    def test_annotations_as_list(self, birth_payload):
        birth_payload["location"]["annotations"] = ["Europe/Istanbul"]

        with pytest.raises(RequestError):
            parse_birth_request(birth_payload, lookup_istanbul)

    def test_zone_name_not_a_string(self, birth_payload):
        birth_payload["location"]["annotations"]["timezone"]["name"] = 123

        with pytest.raises(RequestError, match="Invalid timezone"):
            parse_birth_request(birth_payload, lookup_istanbul)

    def test_birth_info_not_an_object(self, chart):
        chart["birthInfo"] = "Berlin"

        with pytest.raises(RequestError, match="Malformed"):
            parse_transit_request({"transitDate": "2024-03-01", "natalChart": chart}, lookup_istanbul)
