"""Prometheus metrics for uploads, deletions and live-update fan-out."""
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

VIDEO_UPLOADS = Counter(
    "video_hub_uploads_total",
    "Video upload attempts by outcome",
    ["outcome"],
)
VIDEO_DELETES = Counter(
    "video_hub_deletes_total",
    "Video delete attempts by outcome",
    ["outcome"],
)
CATALOG_EVICTIONS = Counter(
    "video_hub_catalog_evictions_total",
    "Videos evicted to keep the catalog within its size bound",
)
LIVE_BROADCASTS = Counter(
    "video_hub_live_broadcasts_total",
    "Events broadcast to live viewers",
    ["event_type"],
)
LIVE_MESSAGES_DROPPED = Counter(
    "video_hub_live_messages_dropped_total",
    "Queued live messages discarded because a viewer fell behind",
)
LIVE_VIEWERS = Gauge(
    "video_hub_live_viewers",
    "Currently connected live-update viewers",
)


def render_latest() -> bytes:
    return generate_latest()


__all__ = [
    "CONTENT_TYPE_LATEST",
    "VIDEO_UPLOADS",
    "VIDEO_DELETES",
    "CATALOG_EVICTIONS",
    "LIVE_BROADCASTS",
    "LIVE_MESSAGES_DROPPED",
    "LIVE_VIEWERS",
    "render_latest",
]
