"""External collaborators: betting server REST API and its event stream."""
