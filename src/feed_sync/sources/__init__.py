"""External content sources, one sub-package per platform."""
