"""dynarch - temporal invariant checker for dynamic component architectures."""

__version__ = "0.1.0"
