"""Command line tool for chart-release."""
