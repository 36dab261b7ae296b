"""
Helper functions for formatting data into human-readable strings.
"""

from streamgrab.models.stream import Representation


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_bandwidth(bandwidth: int) -> str:
    """Formats a bits-per-second value, e.g. 3000000 -> '3.0 Mbps'."""
    if bandwidth >= 1_000_000:
        return f"{bandwidth / 1_000_000:.1f} Mbps"
    return f"{round(bandwidth / 1000)} kbps"


def representation_label(
    height: int, bandwidth: int, codecs: str | None = None, is_audio_only: bool = False
) -> str:
    """Builds the short label shown in quality pickers."""
    kbps = round(bandwidth / 1000)
    if is_audio_only:
        return f"Audio {kbps}kbps ({codecs})" if codecs else f"Audio {kbps}kbps"
    if height:
        return f"{height}p ({codecs})" if codecs else f"{height}p"
    return f"{kbps}kbps"


def describe_representation(rep: Representation) -> str:
    """One-line description used in logs."""
    parts = [rep.label or rep.id, format_bandwidth(rep.bandwidth)]
    if rep.resolution:
        parts.append(rep.resolution)
    return " | ".join(parts)
