"""Reader command: fetches census archives and chunks them into the compute topic."""
