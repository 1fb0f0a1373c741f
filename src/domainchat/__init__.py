"""Domain Chat - brainstorm brandable domain names and check their availability."""

__version__ = "1.0.0"
