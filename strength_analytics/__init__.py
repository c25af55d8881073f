"""Training analytics and notification engine for strength workouts."""

__version__ = "0.1.0"
