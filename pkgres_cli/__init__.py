"""Command line interface for pkgres."""
