"""
Database models package
"""
from papergen.models.paper import Paper
from papergen.models.paper_version import PaperVersion

__all__ = ["Paper", "PaperVersion"]
