"""sealctl — decrypt structured secret documents."""

__version__ = "0.1.0"
