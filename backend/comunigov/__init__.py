"""ComuniGov - institutional communication and coordination platform."""
__version__ = "1.0.0"
