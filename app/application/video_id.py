import re
from typing import Optional

from app.domain.errors import InvalidInput


# Short share form: youtu.be/<id>[?...]
_SHORT_FORM_PATTERN = re.compile(r"youtu\.be/(?P<id>[^/?&#\s]+)")
# Canonical form: ...?v=<id>&... or ...&v=<id>
_LONG_FORM_PATTERN = re.compile(r"[?&]v=(?P<id>[^&#/\s]+)")


def resolve_video_id(url: str) -> Optional[str]:
    """Extract the video identifier from a short or canonical video URL.

    Returns None for input matching neither shape.
    """
    if not url:
        return None
    url = url.strip()
    if "youtu.be" in url:
        match = _SHORT_FORM_PATTERN.search(url)
        return match.group("id") if match else None
    match = _LONG_FORM_PATTERN.search(url)
    return match.group("id") if match else None


def require_video_id(url: str) -> str:
    """Like ``resolve_video_id`` but raises ``InvalidInput`` instead of returning None."""
    video_id = resolve_video_id(url)
    if not video_id:
        raise InvalidInput("Invalid YouTube URL")
    return video_id


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"
