"""HTTP surface: webhook receivers, manual sync triggers and health checks."""
