from jobping.matching.base import ScoredPosting, Scorer
from jobping.matching.engine import MatchingEngine
from jobping.matching.fallback import FallbackScorer
from jobping.matching.primary import PrimaryScorer
from jobping.matching.ranking import rank

__all__ = ["FallbackScorer", "MatchingEngine", "PrimaryScorer", "ScoredPosting", "Scorer", "rank"]
