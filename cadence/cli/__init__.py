"""Command-line interface for inspecting cadence state."""
