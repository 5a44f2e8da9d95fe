"""Registry package resolution with integrity and signature verification."""

__version__ = "0.3.0"
