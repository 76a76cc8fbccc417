from typing import List, Dict, Any
from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from repoaudit.schemas.verdict import Verdict


def round_half_up(value: float, places: int = 0) -> Decimal:
    quantum = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


class StatsService:
    def compute_stats(self, verdicts: List[Verdict]) -> Dict[str, Any]:
        total = len(verdicts)
        if total == 0:
            return {}

        scores = [v.automation_score for v in verdicts]
        files_with_tests = sum(1 for v in verdicts if v.has_tests)

        # 0-10 mean kept to one decimal; overall maps it onto 0-100
        average = round_half_up(sum(scores) / total, 1)
        overall = int((average * 10).to_integral_value(rounding=ROUND_HALF_UP))

        stats = {
            "total_files": total,
            "files_with_tests": files_with_tests,
            "average_score": float(average),
            "overall_score": overall,
            "test_types": dict(Counter(v.test_type for v in verdicts)),
            "failed_analyses": sum(1 for v in verdicts if v.failed),
        }
        return stats

stats_service = StatsService()
