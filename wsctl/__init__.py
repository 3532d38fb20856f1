"""wsctl - run cloud tools against the workspace bound to the current directory."""

__version__ = "0.1.0"
