"""
Exceptions raised by radar_ppi.
"""


class RadarPPIError(Exception):
    """Base class for all radar_ppi errors."""


class InvalidArgument(RadarPPIError, ValueError):
    """Bad cell size, non-logical flag, out-of-range limits, oversized grid."""


class ProjectionError(RadarPPIError, ValueError):
    """Malformed or inconsistent coordinate reference definition."""


class DataAbsent(RadarPPIError, KeyError):
    """Requested parameter is not present in a scan or PPI."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0]) if self.args else ""
