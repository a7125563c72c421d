"""Central version declaration for sptf-webapi.

Update this file when cutting a new release tag. Keep semantic versioning.
pyproject.toml and the CLI --version option read from here.
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
