"""symptomcore: clinical note symptom extraction and pivot aggregation."""

__version__ = "0.3.0"
MATCHER_VERSION = "phrase-index-v4"
