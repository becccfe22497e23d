"""
Core services for vital-sign monitoring.

This package contains the record store, the alert evaluation engine with its
rule evaluators, and the line-oriented feed parser.
"""

from .alert_engine import AlertEvaluationEngine
from .alerts import build_alert, severity_for
from .feed import IngestReport, Result, ingest_directory, ingest_lines, parse_observation_line
from .record_store import Patient, PatientRecordStore
from .rules import RuleEvaluator, default_evaluators

__all__ = [
    "AlertEvaluationEngine",
    "IngestReport",
    "Patient",
    "PatientRecordStore",
    "Result",
    "RuleEvaluator",
    "build_alert",
    "default_evaluators",
    "ingest_directory",
    "ingest_lines",
    "parse_observation_line",
    "severity_for",
]
