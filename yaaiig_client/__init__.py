"""Client for a generative-media job backend: submit, observe, reconcile."""

__version__ = "0.1.0"
