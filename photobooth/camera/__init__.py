"""Camera backends, device management and photo capture."""
