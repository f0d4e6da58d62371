"""archrebuild CLI — Typer-based command-line interface.

Provides the ``archrebuild`` command with subcommands for rebuilding a
version, verifying built images, comparing them against the published
references, finding the commit for a release line, and listing the catalog.

All output uses Rich for formatted terminal display.
"""
