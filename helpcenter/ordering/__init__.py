"""Manual article ordering and duplicate-root resolution."""
