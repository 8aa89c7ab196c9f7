"""Track learning simulation: vehicles, episode loops and their ambient plumbing."""
