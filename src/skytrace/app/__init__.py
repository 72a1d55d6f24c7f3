"""Application wiring: poll cycle, idle handling."""
