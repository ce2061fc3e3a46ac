"""Backup folder services: discovery, retention, trimming, ownership and scheduling."""
