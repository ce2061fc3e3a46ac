"""Backend services and configuration."""
