"""
Exception types raised by the footprint calculation.
"""


class FootprintError(Exception):
    """Base class for all footprint errors."""


class InputError(FootprintError, ValueError):
    """Trajectory ensemble, grid specification or configuration is unusable."""


class SerializationError(FootprintError, OSError):
    """Footprint could not be written to the requested target."""

    def __init__(self, path, message: str):
        self.path = str(path)
        super().__init__(f"Failed to write footprint to {self.path}: {message}")
