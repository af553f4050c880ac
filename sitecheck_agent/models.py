from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

SignalStatus = Literal["good", "warning", "bad", "unknown"]
Verdict = Literal["safe", "likely-safe", "suspicious", "scam"]


class Signal(BaseModel):
    """One evaluator's finding about a URL.

    ``score`` is clamped into ``[0, max_score]`` on construction, so every
    signal that exists honours its bound.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    icon: str
    status: SignalStatus
    max_score: int = Field(..., ge=0)
    score: int = 0
    explanation: str
    tooltip: str = ""
    requires_external_lookup: bool = False

    @model_validator(mode="before")
    @classmethod
    def _clamp_score(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        max_score = data.get("max_score")
        if max_score is None:
            return data
        try:
            score = int(data.get("score") or 0)
        except (TypeError, ValueError):
            score = 0
        return {**data, "score": max(0, min(int(max_score), score))}


class CallerIdentity(BaseModel):
    # Supplied by the identity provider; only ever logged.
    name: str | None = None
    email: str | None = None
    picture: str | None = None


class CheckRequest(BaseModel):
    url: str = Field(..., min_length=1)
    include_external_lookups: bool = Field(False)
    caller: CallerIdentity | None = None


class CheckResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_url: str
    normalized_url: str
    host: str
    total_score: int = Field(..., ge=0, le=100)
    verdict: Verdict
    verdict_text: str
    signals: tuple[Signal, ...]
    suggestions: tuple[str, ...]
    timestamp: datetime
    degraded_analysis: bool = False

    # raw-ish signals
    domain_age_years: float | None = None

    # metadata
    warnings: tuple[str, ...] = ()
    timings_ms: dict[str, int] = {}


class DemoCase(BaseModel):
    url: str
    expected_verdict: Verdict
    description: str


class DemoResult(BaseModel):
    url: str
    description: str
    expected_verdict: Verdict
    verdict: Verdict
    total_score: int
    matched: bool
