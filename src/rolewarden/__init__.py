"""rolewarden - reconcile Azure PIM role grants and policies with a config directory."""

__version__ = "0.1.0"
