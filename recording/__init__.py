"""Video output sinks for timeline export."""
