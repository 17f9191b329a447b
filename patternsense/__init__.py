"""
PatternSense: adaptive confidence for learned coding patterns.

Learns recurring patterns from observations, adapts their confidence from user
feedback and elapsed time, and ranks them as suggestions.
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .learning import AdaptiveEngine, EngineSuite
from .cli import main

__all__ = ["AdaptiveEngine", "EngineSuite", "main"]
