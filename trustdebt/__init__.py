"""
Trust Debt Engine

Measures the drift between what a repository documents (Intent) and what it
implements (Reality): keyword extraction, an orthogonal ShortLex-ordered
category taxonomy, an asymmetric drift matrix and a calibrated grade.
"""

from trustdebt.config import PipelineConfig, load_config
from trustdebt.errors import TrustDebtError
from trustdebt.models import Category, Corpus, CorpusSource, Grade, KeywordRecord, MatrixCell

__all__ = [
    "Category",
    "Corpus",
    "CorpusSource",
    "Grade",
    "KeywordRecord",
    "MatrixCell",
    "PipelineConfig",
    "TrustDebtError",
    "load_config",
]
__version__ = "0.1.0"
