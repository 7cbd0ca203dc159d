"""Command line tool for bundle content."""
