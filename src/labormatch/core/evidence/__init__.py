"""Evidence extraction from free text."""

from .domain import DomainEvidenceConfig, DomainEvidenceExtractor, extract_domain_evidence
from .labeling import LabelingEvidenceConfig, LabelingEvidenceExtractor, extract_labeling_evidence
from .vocabulary import LabelingVocabulary, default_vocabulary, load_vocabulary

__all__ = [
    "DomainEvidenceConfig",
    "DomainEvidenceExtractor",
    "LabelingEvidenceConfig",
    "LabelingEvidenceExtractor",
    "LabelingVocabulary",
    "default_vocabulary",
    "extract_domain_evidence",
    "extract_labeling_evidence",
    "load_vocabulary",
]
