"""Ephemeral sandbox runner for bundled servers, with FUSE object-storage mounts."""

__version__ = "0.1.0"
