"""REST API over the provider chain."""

from housing_pulse.api.app import create_app

__all__ = ["create_app"]
