"""Boot-time disk provisioning: shrink the root partition and hand the rest to LVM."""

from .__version__ import __version__


__all__ = ["__version__"]
