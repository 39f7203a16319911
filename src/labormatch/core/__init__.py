"""Pure matching logic: evidence, validation, classification, scoring."""

from .protocols import Classifier, Embedder, TextGenerator, VectorStore
from .scoring import ScoringConfig, ScoringEngine, ThresholdConfig, ThresholdPolicy
from .taxonomy import Taxonomy, default_taxonomy, load_taxonomy

__all__ = [
    "Classifier",
    "Embedder",
    "ScoringConfig",
    "ScoringEngine",
    "TextGenerator",
    "Taxonomy",
    "ThresholdConfig",
    "ThresholdPolicy",
    "VectorStore",
    "default_taxonomy",
    "load_taxonomy",
]
