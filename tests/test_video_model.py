"""
Tests for video record normalization
"""
from datetime import datetime, timezone

import pytest

from health_search.models.results import Intent, ProcessedQuery
from health_search.models.video import Segment, Video, parse_duration


def test_segment_requires_start_before_end():
    with pytest.raises(ValueError):
        Segment(start_time=10, end_time=10, text="x")


def test_segment_from_start_and_duration():
    segment = Segment.from_record({"start": "12.5", "dur": 4, "text": "hello"})

    assert segment.start_time == 12.5
    assert segment.end_time == 16.5
    assert segment.label is None


def test_video_from_snake_case_row():
    video = Video.from_record({
        "video_id": "abc",
        "youtube_id": "yt-abc",
        "title": "Focus",
        "duration_seconds": 600,
        "view_count": "42",
        "published_at": "2023-05-01T00:00:00Z",
        "topics": ["Focus", "focus", " attention "],
        "transcript_segments": [
            {"start_time": 0, "end_time": 5, "text": "one"},
            {"start_time": 9, "end_time": 3, "text": "backwards"},
        ],
    })

    assert video.id == "abc"
    assert video.external_id == "yt-abc"
    assert video.view_count == 42
    assert video.published_at == datetime(2023, 5, 1, tzinfo=timezone.utc)
    assert video.topics == ("Focus", "attention")
    assert [s.text for s in video.segments] == ["one"]


def test_external_id_defaults_to_id():
    video = Video.from_record({"id": "only-id", "title": "t"})

    assert video.external_id == "only-id"
    assert video.segments == ()


def test_video_requires_id():
    with pytest.raises(ValueError):
        Video.from_record({"title": "orphan"})


@pytest.mark.parametrize("value,expected", [
    (None, 0),
    (95, 95),
    ("1:35", 95),
    ("2:15:30", 8130),
    ("n/a", 0),
])
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


def test_degraded_query_carries_no_cost():
    with pytest.raises(ValueError):
        ProcessedQuery(("sleep",), Intent.OTHER, 0.5, cost=0.01, degraded=True)


def test_confidence_must_be_in_range():
    with pytest.raises(ValueError):
        ProcessedQuery(("sleep",), Intent.OTHER, 1.5)
