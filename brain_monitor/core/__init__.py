"""Core shared types and protocols for brain-monitor."""
