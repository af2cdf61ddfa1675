
from abc import ABC, abstractmethod


class BasePositioningAdapter(ABC):
    """
    Abstract base class for a positioning adapter.
    Defines the common interface for every source of the device's position.
    """

    name = "base"

    @abstractmethod
    def get_current_position(self, timeout, max_age):
        """
        Reads the current position, waiting at most `timeout` seconds and
        accepting a previous fix up to `max_age` seconds old.
        Returns Coordinates, or None when no position is available.
        """
        pass
