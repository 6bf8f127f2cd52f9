"""Breaking-change classification for schema comparisons."""

from .rules import RULES, ChangeRule
from .severity_classifier import SeverityClassifier

__all__ = [
    "RULES",
    "ChangeRule",
    "SeverityClassifier",
]
