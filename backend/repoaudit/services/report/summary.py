from typing import Callable, List, Optional
from repoaudit.core.logging import get_logger
from repoaudit.schemas.verdict import Verdict
from repoaudit.services.llm.client import loads_llm_json

logger = get_logger("summary")

# prompt -> raw model text
Summarizer = Callable[[str], str]

MAX_BULLETS = 5
MAX_BULLET_CHARS = 100


def build_summary_prompt(verdicts: List[Verdict], average_score: float) -> str:
    observations = [obs for v in verdicts for obs in v.observations]
    observation_lines = "\n".join(f"- {obs}" for obs in observations) or "- (none)"
    score_lines = "\n".join(f"- {v.file_name}: {v.automation_score:g}/10" for v in verdicts)

    return f"""You are a Senior SDET providing an executive summary of code quality analysis.

Project Analysis Results:
- Total files analyzed: {len(verdicts)}
- Average automation score: {average_score:.1f}/10
- Per-file automation scores:
{score_lines}
- All observations from individual file analyses:
{observation_lines}

Provide a concise executive summary (3-5 bullet points) focusing on:
1. Overall test automation maturity
2. Key strengths identified
3. Critical areas needing improvement
4. Recommended next steps

Return ONLY a JSON object with this structure:
{{
  "summary": ["<bullet point 1>", "<bullet point 2>", "<bullet point 3>"]
}}

Keep each bullet point under {MAX_BULLET_CHARS} characters and make them actionable for stakeholders."""


def parse_summary(text: str) -> List[str]:
    data = loads_llm_json(text)
    if not isinstance(data, dict) or not isinstance(data.get("summary"), list):
        raise ValueError("summary response missing 'summary' list")

    bullets = [str(b).strip() for b in data["summary"] if str(b).strip()]
    if not bullets:
        raise ValueError("summary response has no bullet points")
    return bullets[:MAX_BULLETS]


def fallback_summary(average_score: float, total_files: int) -> str:
    """Deterministic summary built only from local statistics."""
    if average_score >= 8:
        maturity = "strong"
        advice = "Keep coverage high and wire the existing tests into CI."
    elif average_score >= 6:
        maturity = "moderate"
        advice = "Add tests around the lowest-scoring files and decouple hard dependencies."
    else:
        maturity = "needs improvement"
        advice = "Introduce unit tests for core logic and remove hardcoded configuration."

    lines = [
        f"Analyzed {total_files} files with an average automation score of {average_score:.1f}/10.",
        f"Overall test automation maturity: {maturity}.",
        advice,
    ]
    return "\n".join(lines)


class SummaryService:
    def __init__(self, summarizer: Optional[Summarizer]):
        self.summarizer = summarizer

    def summarize(self, verdicts: List[Verdict], average_score: float) -> str:
        if self.summarizer is not None:
            prompt = build_summary_prompt(verdicts, average_score)
            try:
                return "\n".join(parse_summary(self.summarizer(prompt)))
            except Exception as e:
                logger.warning(f"Summary generation failed, using local fallback: {e}")
        return fallback_summary(average_score, len(verdicts))
