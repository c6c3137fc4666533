"""Package marker for the CV refiner HTTP service."""

__version__ = "0.1.0"
