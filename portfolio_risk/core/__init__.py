"""Core domain records, configuration, persistence and logging."""
