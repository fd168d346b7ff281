from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from mediaingest.schemas import AssetRecord, LinkUnavailable, NotAnEmbed


def test_to_dict_formats_date_and_drops_embed_fields():
    record = AssetRecord(
        type="image/png",
        name="a.png",
        charset="binary",
        size=10,
        width=2,
        height=3,
        date_uploaded=datetime(2024, 5, 1, 12, 30, 45, tzinfo=timezone.utc),
        storage_adapter="local",
    )

    payload = record.to_dict()

    assert payload["date_uploaded"] == "2024-05-01 12:30:45"
    assert "url" not in payload and "data" not in payload
    assert payload["title"] == ""


def test_date_string_is_parsed():
    record = AssetRecord(type="embed/vimeo", name="v.jpg", date_uploaded="2024-05-01 12:30:45")
    assert record.date_uploaded == datetime(2024, 5, 1, 12, 30, 45, tzinfo=timezone.utc)
    assert record.is_embed


def test_none_text_fields_become_blank():
    record = AssetRecord(type="text/plain", name="a.txt", caption=None, tags=None)
    assert record.caption == "" and record.tags == ""


def test_dimensions_must_be_paired():
    with pytest.raises(ValidationError):
        AssetRecord(type="image/png", name="a.png", width=10)


def test_records_are_immutable():
    record = AssetRecord(type="image/png", name="a.png")
    with pytest.raises(ValidationError):
        record.name = "b.png"


def test_negative_results_are_falsy():
    assert not NotAnEmbed(type="image/png")
    assert not LinkUnavailable(url="https://example.com", reason="404")
