"""Flag Manifold positions whose return if correct is below the margin rate."""

__version__ = "0.1.0"
