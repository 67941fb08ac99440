import re
from dataclasses import dataclass, field
from typing import List, Pattern, Tuple

WORK_REQUEST = "work_request"
JOB_POSTING = "job_posting"

FAMILY_WEIGHT = 2

# Someone offering their own labour or availability
SEEKING_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    ("Seeking work directly", re.compile(r"\b(i|me)\s+(need|want|looking\s+for|am\s+looking\s+for)\s+(a\s+)?(job|work|employment)", re.I)),
    ("Availability for work", re.compile(r"available\s+(for\s+)?(work|job)", re.I)),
    ("Skill offering", re.compile(r"i\s+(can|do|offer)", re.I)),
    ("Skills mentioned", re.compile(r"my\s+skills", re.I)),
    ("Experience mentioned", re.compile(r"experienced\s+(in|at|with)", re.I)),
]

# Someone asking a third party to do a task
HIRING_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    ("Hiring need expressed", re.compile(r"\b(need|want|looking\s+for)\s+(a|an|some|someone|somebody)\s+\w+\s+(to|for|who\s+can)", re.I)),
    ("Need someone for task", re.compile(r"\b(need|want|looking\s+for)\s+(a\s+|an\s+|some\s+)?(someone|somebody)\s+(to|for|who\s+can)", re.I)),
    ("Task for someone", re.compile(r"someone\s+(to|must|should)\s+\w+", re.I)),
    ("Personal task needing worker", re.compile(r"fix\s+my|paint\s+my|clean\s+my|repair\s+my", re.I)),
]

CONFIDENCE_UNDECIDED = 0.5
CONFIDENCE_SINGLE_FAMILY = 0.9


@dataclass
class CategoryResult:
    category: str
    confidence: float
    seeking_score: int = 0
    hiring_score: int = 0
    indicators: List[str] = field(default_factory=list)


def _family_hits(text: str, patterns: List[Tuple[str, Pattern[str]]]) -> List[str]:
    return [name for name, pattern in patterns if pattern.search(text)]


def categorize(transcript: str) -> CategoryResult:
    """Classify a transcript as a worker offering skills or a poster hiring.

    Each pattern family adds a fixed weight when any of its patterns match.
    Hiring must strictly outscore seeking to produce ``job_posting``; ties and
    transcripts with no signal at all fall back to ``work_request``.

    Confidence is 0.9 when exactly one family fired and 0.5 otherwise.
    """
    lower = (transcript or "").lower()
    seeking_hits = _family_hits(lower, SEEKING_PATTERNS)
    hiring_hits = _family_hits(lower, HIRING_PATTERNS)

    seeking_score = FAMILY_WEIGHT if seeking_hits else 0
    hiring_score = FAMILY_WEIGHT if hiring_hits else 0

    category = JOB_POSTING if hiring_score > seeking_score else WORK_REQUEST
    confidence = CONFIDENCE_SINGLE_FAMILY if bool(seeking_hits) != bool(hiring_hits) else CONFIDENCE_UNDECIDED

    return CategoryResult(
        category=category,
        confidence=confidence,
        seeking_score=seeking_score,
        hiring_score=hiring_score,
        indicators=seeking_hits + hiring_hits,
    )


def categorize_label(transcript: str) -> str:
    return categorize(transcript).category
