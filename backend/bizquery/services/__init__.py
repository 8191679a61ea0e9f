"""Query pipeline services."""
