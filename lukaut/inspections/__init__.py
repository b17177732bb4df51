"""Inspections and their lifecycle."""

from lukaut.inspections.service import (
    AnalysisStatus,
    InspectionParams,
    create_inspection,
    delete_inspection,
    get_analysis_status,
    get_inspection,
    list_inspections,
    transition,
    trigger_analysis,
    update_inspection,
    update_status,
)

__all__ = [
    "AnalysisStatus",
    "InspectionParams",
    "create_inspection",
    "delete_inspection",
    "get_analysis_status",
    "get_inspection",
    "list_inspections",
    "transition",
    "trigger_analysis",
    "update_inspection",
    "update_status",
]
