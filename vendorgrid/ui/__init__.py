"""UI components for vendorgrid."""

from .app import VendorGridApp

__all__ = ["VendorGridApp"]
