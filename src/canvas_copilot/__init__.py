"""canvas copilot: turns ai action answers into edgeless canvas edits."""

__version__ = "0.1.0"
