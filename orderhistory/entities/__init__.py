"""Entity assembly on top of the request scheduler."""
