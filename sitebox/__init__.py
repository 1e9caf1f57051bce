"""Provision sandboxes for generated projects and publish them to static hosting."""

__version__ = "0.1.0"
