"""
Release pipeline for a multi-chart Helm repository.

The pipeline discovers changed charts, updates their descriptor files with
signed commits, packages charts and publishes them as GitHub releases and
OCI registry artifacts, keeping a per chart type inventory of chart state.
"""

__all__ = [
    "chart",
    "config",
    "exceptions",
    "github",
    "helm",
    "inventory",
    "manifest",
    "release",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
