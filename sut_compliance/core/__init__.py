"""Core settings and enumerations."""
