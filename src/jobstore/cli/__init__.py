"""Command-line interface for inspecting and maintaining a job store."""
