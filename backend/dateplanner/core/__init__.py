"""Configuration, exceptions and time helpers shared by the scheduling core."""
