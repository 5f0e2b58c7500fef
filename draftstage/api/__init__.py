"""HTTP API for the draft stage."""
