"""Version-control integration for files touched by a run."""
