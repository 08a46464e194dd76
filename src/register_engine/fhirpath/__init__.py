"""FHIRPath helpers."""

from register_engine.fhirpath.extractor import (
    FhirPathDataExtractor,
    default_extractor,
    extract_logical_id_uuid,
    reference_of,
    split_reference,
)
from register_engine.fhirpath.sorting import filter_resources, sort_resources

__all__ = [
    "FhirPathDataExtractor",
    "default_extractor",
    "extract_logical_id_uuid",
    "filter_resources",
    "reference_of",
    "sort_resources",
    "split_reference",
]
