from typing import Callable, Optional
from repoaudit.core.config import settings
from repoaudit.core.logging import get_logger
from repoaudit.schemas.verdict import UnitRef, Verdict
from repoaudit.services.analysis.prompts import SYSTEM_ROLE, build_unit_prompt, truncate_content
from repoaudit.services.analysis.verdicts import VerdictParseError, parse_verdict
from repoaudit.storage.blob import BlobStore, result_key, unit_key

logger = get_logger("unit_analyzer")

# (system_role, prompt) -> raw model text
Classifier = Callable[[str, str], str]


class UnitAnalyzer:
    def __init__(self, store: BlobStore, classifier: Classifier, max_chars: Optional[int] = None):
        self.store = store
        self.classifier = classifier
        self.max_chars = max_chars or settings.MAX_CONTENT_CHARS

    def analyze(self, unit: UnitRef) -> Verdict:
        """
        Analyze one stored unit and write its verdict under (job id, path).
        Never raises for unit-level problems: fetch, classifier and parse
        failures all produce the canonical failure verdict, which is stored too.
        """
        logger.info(f"Analyzing file: {unit.path} for user {unit.user_id}, project {unit.project_id}")
        verdict = self._evaluate(unit)
        self._store(unit, verdict)
        if verdict.failed:
            logger.warning(f"Analysis failed for {unit.path}: {verdict.observations[0]}")
        else:
            logger.info(f"Analysis completed for {unit.path}: score {verdict.automation_score}")
        return verdict

    def _evaluate(self, unit: UnitRef) -> Verdict:
        try:
            raw = self.store.get(unit_key(unit.user_id, unit.project_id, unit.path))
        except Exception as e:
            return Verdict.failure(unit.path, f"could not read file content ({e})")

        content = truncate_content(raw.decode("utf-8", errors="replace"), self.max_chars)
        prompt = build_unit_prompt(unit.path, content)

        try:
            response = self.classifier(SYSTEM_ROLE, prompt)
        except Exception as e:
            return Verdict.failure(unit.path, f"classifier error ({type(e).__name__}: {e})")

        outcome = parse_verdict(response, unit.path)
        if isinstance(outcome, VerdictParseError):
            return Verdict.failure(unit.path, outcome.reason)
        return outcome

    def _store(self, unit: UnitRef, verdict: Verdict) -> None:
        key = result_key(unit.user_id, unit.project_id, unit.job_id, unit.path)
        try:
            self.store.put(key, verdict.to_json_bytes())
        except Exception as e:
            logger.error(f"Failed to save analysis result {key}: {e}")
