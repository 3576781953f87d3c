"""Kiosk photo booth: camera capture, remote image edit, photo pairs."""

__version__ = "0.1.0"
