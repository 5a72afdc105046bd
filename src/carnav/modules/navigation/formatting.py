from __future__ import annotations


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours >= 1:
        return f"{hours}h {minutes}min"
    if minutes >= 1:
        return f"{minutes}min"
    return f"{secs}s"


def format_distance(meters: float) -> str:
    return f"{meters / 1000:.1f} km"
