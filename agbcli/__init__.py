"""Image build, activation and listing workflows, OAuth login and token storage for a cloud image service."""

__version__ = "0.1.0"