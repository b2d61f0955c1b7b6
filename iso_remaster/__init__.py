"""Re-master installation images with an injected unattended-setup file."""

from .__version__ import __version__


__all__ = ["__version__"]
