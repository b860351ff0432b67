"""http surface for canvas copilot."""
