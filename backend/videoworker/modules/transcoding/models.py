"""Target resolutions for transcoded output."""

from enum import Enum


class Resolution(str, Enum):
    """Supported output resolutions.

    Only 720p is produced by the pipeline; the other entries document the
    ladder the encoder settings are defined for.
    """
    RES_720P = "720p"
    RES_1080P = "1080p"


# Resolution dimensions mapping
RESOLUTION_DIMENSIONS = {
    Resolution.RES_720P: (1280, 720),
    Resolution.RES_1080P: (1920, 1080),
}

# Recommended video bitrates (bps)
RESOLUTION_BITRATES = {
    Resolution.RES_720P: 2_500_000,
    Resolution.RES_1080P: 4_500_000,
}


def get_resolution_dimensions(resolution: Resolution) -> tuple[int, int]:
    """Get (width, height) for a resolution."""
    return RESOLUTION_DIMENSIONS[resolution]


def get_recommended_bitrate(resolution: Resolution) -> int:
    """Get the recommended video bitrate for a resolution."""
    return RESOLUTION_BITRATES[resolution]
