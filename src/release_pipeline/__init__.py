"""release-pipeline: release automation for Python projects.

Infers the next semantic version from conventional commits, tags the
repository, builds distributions and publishes them to several targets.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
