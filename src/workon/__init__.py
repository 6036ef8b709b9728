"""workon: launch and tear down a project's desktop workspace from one manifest."""

__version__ = "0.1.0"

__all__ = ["__version__"]
