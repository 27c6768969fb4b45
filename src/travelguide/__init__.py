"""Travel guide client: country catalogue, admin editing and a local content cache."""

__version__ = "0.1.0"
