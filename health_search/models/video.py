"""
Video and transcript segment value types

Records reach the service in several shapes (Supabase rows, the bundled JSON
library, raw transcript dumps with start/dur). Video.from_record is the one
place that maps them; everything downstream sees the normalized types.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Segment:
    """A timestamped slice of a video's transcript"""

    start_time: float
    end_time: float
    text: str
    label: Optional[str] = None

    def __post_init__(self):
        if self.start_time >= self.end_time:
            raise ValueError(
                f"Segment start ({self.start_time}) must be before end ({self.end_time})"
            )

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Segment":
        start = _first(record, "startTime", "start_time", "start", default=0)
        start = float(start or 0)

        end = _first(record, "endTime", "end_time", "end")
        if end is None:
            duration = _first(record, "dur", "duration", default=0)
            end = start + float(duration or 0)

        return cls(
            start_time=start,
            end_time=float(end),
            text=str(record.get("text") or ""),
            label=record.get("label") or None,
        )


@dataclass(frozen=True)
class Video:
    """Immutable video record with its owned segments"""

    id: str
    external_id: str
    title: str
    description: str = ""
    duration_seconds: int = 0
    view_count: int = 0
    published_at: Optional[datetime] = None
    topics: Tuple[str, ...] = field(default_factory=tuple)
    segments: Tuple[Segment, ...] = field(default_factory=tuple)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Video":
        """
        Normalize a loosely shaped video record

        Accepts camelCase or snake_case keys, youtube_id/videoId as the
        external id, "h:mm:ss" durations and transcript rows keyed
        start/dur. Segments that violate start < end are dropped.
        """
        video_id = _first(record, "id", "video_id", "videoId")
        if video_id is None:
            raise ValueError("Video record has no id")

        external_id = _first(
            record, "externalId", "external_id", "youtube_id", "youtubeId", "videoId",
            default=video_id,
        )

        duration = _first(record, "durationSeconds", "duration_seconds", "duration", default=0)

        raw_segments = _first(
            record, "segments", "transcript_segments", "transcript", default=[]
        ) or []

        return cls(
            id=str(video_id),
            external_id=str(external_id),
            title=str(record.get("title") or ""),
            description=str(record.get("description") or ""),
            duration_seconds=parse_duration(duration),
            view_count=int(_first(record, "viewCount", "view_count", default=0) or 0),
            published_at=parse_datetime(_first(record, "publishedAt", "published_at")),
            topics=_normalize_topics(record.get("topics") or []),
            segments=_normalize_segments(raw_segments, str(video_id)),
        )


def parse_duration(value: Any) -> int:
    """Seconds from an int/float or an "h:mm:ss" / "m:ss" string"""
    if value is None or value == "":
        return 0
    if isinstance(value, (int, float)):
        return int(value)

    parts = str(value).strip().split(":")
    try:
        seconds = 0
        for part in parts:
            seconds = seconds * 60 + int(float(part))
        return seconds
    except ValueError:
        logger.warning(f"Unparseable duration: {value!r}")
        return 0


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable timestamp: {value!r}")
        return None


def _first(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return default


def _normalize_topics(topics: Iterable[Any]) -> Tuple[str, ...]:
    normalized = []
    seen = set()
    for topic in topics:
        cleaned = str(topic).strip()
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            normalized.append(cleaned)
    return tuple(normalized)


def _normalize_segments(raw_segments: Iterable[Any], video_id: str) -> Tuple[Segment, ...]:
    segments = []
    for raw in raw_segments:
        if isinstance(raw, Segment):
            segments.append(raw)
            continue
        try:
            segments.append(Segment.from_record(raw))
        except (ValueError, TypeError) as e:
            logger.warning(f"Dropping invalid segment for video {video_id}: {e}")
    return tuple(segments)
