"""
Multi-level P&L report assembly.
"""
from src.reports.models import (
    AccountValues,
    AssemblyResult,
    ChildCounts,
    ReportHeader,
    ReportLevel,
    ReportNode,
)
from src.reports.assembler import ReportAssembler

__all__ = [
    "AccountValues",
    "AssemblyResult",
    "ChildCounts",
    "ReportHeader",
    "ReportLevel",
    "ReportNode",
    "ReportAssembler",
]
