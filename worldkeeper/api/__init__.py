"""HTTP API surface and process-level plumbing (settings, logging, security)."""
