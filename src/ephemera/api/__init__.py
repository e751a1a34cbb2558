"""HTTP API for the Ephemera service."""
