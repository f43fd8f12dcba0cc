"""OpenClaw integration services."""
