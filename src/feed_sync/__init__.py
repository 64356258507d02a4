"""Feed Sync: Facebook Page and YouTube channel content synchronised into one feed."""

__version__ = "0.1.0"
