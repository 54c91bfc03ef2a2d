"""Document extraction for policy drafts.

This package is organized into modules:
- document_steps: Size and format validation, base64 encoding
- error_classifier: Maps service failures to an ExtractionErrorKind
- result_mapper: Coerces service fields and merges them into a draft
- progress: Cosmetic progress estimate while the service works
- extraction_pipeline: The state machine tying the steps together
"""

from app.services.extraction.extraction_pipeline import ExtractionPipeline
from app.services.extraction.progress import ProgressEstimator

__all__ = [
    "ExtractionPipeline",
    "ProgressEstimator",
]
