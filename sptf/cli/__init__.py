"""CLI package bootstrap.

Defines root group (`cli`) in helpers and imports submodules so their
decorators register commands.
"""
from sptf.cli.helpers import cli  # root group
from sptf.cli import auth_cmds  # noqa: F401
from sptf.cli import catalog_cmds  # noqa: F401
from sptf.cli import cache_cmds  # noqa: F401

__all__ = ["cli"]
