"""Labor-marketplace matching pipeline: evidence, capsules, classification, scoring, qualification."""

__version__ = "0.1.0"
