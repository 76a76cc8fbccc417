"""Pydantic contracts for per-unit verdicts and their stored form."""

from __future__ import annotations

import enum
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

SCORE_MIN = 0
SCORE_MAX = 10

FAILURE_SUGGESTION = "Fix analysis errors and retry"
FAILURE_PREFIX = "Analysis failed: "


class TestType(str, enum.Enum):
    UNIT = "unit"
    INTEGRATION = "integration"
    E2E = "e2e"
    NONE = "none"


class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    file_name: str
    automation_score: float = Field(ge=SCORE_MIN, le=SCORE_MAX)
    has_tests: StrictBool
    test_type: TestType
    observations: list[str] = Field(default_factory=list)
    improvement_suggestions: list[str] = Field(default_factory=list)

    @field_validator("automation_score", mode="before")
    @classmethod
    def _numeric_score(cls, value: Any) -> Any:
        # bool is an int subclass and numeric strings coerce in lax mode
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"automation_score must be a number, got {value!r}")
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError(f"automation_score must be finite, got {value!r}")
        return value

    @field_validator("observations", "improvement_suggestions", mode="before")
    @classmethod
    def _string_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValueError("expected a list of strings")
        return value

    @property
    def failed(self) -> bool:
        """True only for the exact placeholder built by `failure`."""
        return (
            self.automation_score == 0
            and not self.has_tests
            and self.test_type == TestType.NONE.value
            and len(self.observations) == 1
            and self.observations[0].startswith(FAILURE_PREFIX)
            and self.improvement_suggestions == [FAILURE_SUGGESTION]
        )

    @classmethod
    def failure(cls, file_name: str, cause: str) -> Verdict:
        """The canonical placeholder stored when a unit cannot be analyzed."""
        return cls(
            file_name=file_name,
            automation_score=0,
            has_tests=False,
            test_type=TestType.NONE,
            observations=[f"{FAILURE_PREFIX}{cause}"],
            improvement_suggestions=[FAILURE_SUGGESTION],
        )

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(indent=2).encode("utf-8")


class UnitRef(BaseModel):
    """Everything a worker needs to analyze one unit."""

    job_id: str
    user_id: str
    project_id: str
    path: str
