"""
Research pipeline.

Admission limiter, result cache, retry executor, source scheduler, page
reader, confidence/cross-reference analysis and topic decomposition.
``ResearchService`` (in :mod:`ghostbrowse.research.orchestrator`) ties them
together.
"""

from ghostbrowse.research.cache import ResultCache
from ghostbrowse.research.confidence import (
    ConfidenceLevel,
    ConfidenceReport,
    CrossReference,
    compute_confidence,
    cross_reference,
)
from ghostbrowse.research.decomposer import SubQuestion, decompose, unique_queries
from ghostbrowse.research.limiter import AdmissionLimiter, RateLimit
from ghostbrowse.research.models import (
    PageResult,
    ResearchSession,
    SourceJob,
    SourceResult,
)
from ghostbrowse.research.retry import RetryExecutor, RetryPolicy

__all__ = [
    "AdmissionLimiter",
    "ConfidenceLevel",
    "ConfidenceReport",
    "CrossReference",
    "PageResult",
    "RateLimit",
    "ResearchSession",
    "ResultCache",
    "RetryExecutor",
    "RetryPolicy",
    "SourceJob",
    "SourceResult",
    "SubQuestion",
    "compute_confidence",
    "cross_reference",
    "decompose",
    "unique_queries",
]
