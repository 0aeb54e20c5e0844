"""Per-question answer distributions for the report charts."""
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .models import QuestionType, Response

logger = logging.getLogger(__name__)


@dataclass
class Aggregation:
    question_id: str
    counts: Dict[str, int] = field(default_factory=dict)
    total_tallied: int = 0
    responses_scanned: int = 0

    @property
    def empty(self) -> bool:
        return self.total_tallied == 0

    def proportions(self) -> List[Tuple[str, int, float]]:
        """(label, count, percentage of all tallies) in first-seen order"""
        if not self.total_tallied:
            return []
        return [
            (label, count, count / self.total_tallied * 100)
            for label, count in self.counts.items()
        ]

    def ordered(self) -> List[Tuple[str, int]]:
        """(label, count) sorted by the label's integer value.

        Labels that are not integers sort as if they were 0; ties keep their
        first-seen order.
        """
        return [(label, self.counts[label]) for label in sorted(self.counts, key=rating_sort_key)]


def rating_sort_key(label: str) -> int:
    try:
        return int(label)
    except (TypeError, ValueError):
        return 0


def chart_kind(question_type: Optional[QuestionType]) -> Optional[str]:
    """'bar' for ratings, 'pie' for choice questions, None when not chartable"""
    if question_type is QuestionType.RATING:
        return 'bar'
    if question_type is not None and question_type.is_choice:
        return 'pie'
    return None


def aggregate(survey_id: str, question_id: str, responses: Iterable[Response]) -> Aggregation:
    """Count answer labels for one question across a survey's responses.

    A multi-valued answer adds one to every distinct label it contains, so the
    total can exceed the number of responses. Labels are counted verbatim.
    """
    result = Aggregation(question_id=question_id)
    counts = Counter()

    for response in responses:
        if str(response.survey_id) != str(survey_id):
            continue
        result.responses_scanned += 1

        answer = response.answer_for(question_id)
        if answer is None:
            continue

        for label in answer.labels:
            counts[label] += 1
            result.total_tallied += 1

    # Counter keeps insertion order
    result.counts = dict(counts)
    logger.debug(
        f"Aggregated question {question_id} of survey {survey_id}: "
        f"{result.total_tallied} tallies over {result.responses_scanned} responses"
    )
    return result
