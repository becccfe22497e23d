"""Domain models and errors, free of service and threading concerns."""
