from .json_extractor import (
    ExpectedShape,
    ExtractionResult,
    Shape,
    balanced_regions,
    extract,
    validate_shape,
)

__all__ = [
    "ExpectedShape",
    "ExtractionResult",
    "Shape",
    "balanced_regions",
    "extract",
    "validate_shape",
]
