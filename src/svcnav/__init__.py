"""svcnav: dependency map navigator for metrics-backed microservice meshes."""

__version__ = "0.1.0"
