"""
Agent classification for incoming queries.

Maps a query plus caller metadata to an agent profile id. An explicit, known
hint always wins; otherwise the query is scored against per-profile
signatures (keywords, regex patterns, work-context rules). Classification
never fails: low confidence degrades to the registry's default profile.
"""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from loguru import logger

from .config import Config
from .errors import ClassificationUncertain
from .metrics import MetricsSink, NullMetrics
from .models import Query
from .profiles.registry import ProfileRegistry

# Component weights for the combined signature score
KEYWORD_WEIGHT = 0.4
REGEX_WEIGHT = 0.4
CONTEXT_WEIGHT = 0.2

# Keyword component saturates once this many distinct keywords match
KEYWORD_SATURATION = 3

MAX_ALTERNATIVES = 3


@dataclass(frozen=True)
class ClassificationSignature:
    """Feature signature used to recognise queries for one profile."""

    profile_id: str
    keywords: tuple[str, ...] = ()
    regex_patterns: tuple[str, ...] = ()
    context_rules: Mapping[str, str] = field(default_factory=dict)  # work_context key -> regex
    weight: float = 1.0

    _keyword_re: re.Pattern | None = field(default=None, init=False, repr=False, compare=False)
    _regexes: tuple = field(default=(), init=False, repr=False, compare=False)
    _context_res: tuple = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.profile_id:
            raise ValueError("profile_id must not be empty")
        keywords = tuple(k.lower() for k in self.keywords)
        object.__setattr__(self, "keywords", keywords)
        object.__setattr__(self, "regex_patterns", tuple(self.regex_patterns))
        object.__setattr__(self, "context_rules", dict(self.context_rules))
        if keywords:
            alternation = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
            object.__setattr__(self, "_keyword_re", re.compile(rf"\b(?:{alternation})\b"))
        object.__setattr__(
            self, "_regexes", tuple(re.compile(p, re.IGNORECASE) for p in self.regex_patterns)
        )
        object.__setattr__(
            self,
            "_context_res",
            tuple((key, re.compile(rule)) for key, rule in self.context_rules.items()),
        )

    def matched_keywords(self, lowered_query: str) -> list[str]:
        if self._keyword_re is None:
            return []
        return sorted(set(self._keyword_re.findall(lowered_query)))

    def regex_matches(self, query: str) -> int:
        return sum(1 for regex in self._regexes if regex.search(query))

    def context_score(self, work_context: Mapping[str, Any]) -> float:
        if not self._context_res or not work_context:
            return 0.0
        matched = 0
        for key, regex in self._context_res:
            value = work_context.get(key)
            if isinstance(value, (list, tuple)):
                value = " ".join(str(v) for v in value)
            if isinstance(value, str) and regex.search(value):
                matched += 1
        return matched / len(self._context_res)


@dataclass(frozen=True)
class SignatureScore:
    profile_id: str
    score: float
    matched_keywords: tuple[str, ...]
    reasoning: str


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying one query."""

    profile_id: str
    confidence: float
    reasoning: str
    outcome: str  # "explicit", "inferred" or "default"
    alternatives: tuple[SignatureScore, ...] = ()

    @property
    def explicit(self) -> bool:
        return self.outcome == "explicit"


DEFAULT_SIGNATURES = (
    ClassificationSignature(
        profile_id="code_analysis",
        keywords=(
            "function", "class", "method", "variable", "algorithm", "implementation",
            "implement", "code", "programming", "syntax", "logic", "refactor",
            "optimize", "interface", "api", "signature", "module",
        ),
        regex_patterns=(
            r"how.*implement",
            r"what.*function",
            r"explain.*code",
            r"analy[sz]e.*function",
            r"refactor.*code",
            r"optimi[sz]e.*algorithm",
            r"write.*function",
            r"create.*class",
        ),
        context_rules={
            "active_file": r"\.(go|js|ts|py|java|cpp|rs)$",
            "git_branch": r"feature/.*|refactor/.*",
        },
        weight=1.0,
    ),
    ClassificationSignature(
        profile_id="documentation",
        keywords=(
            "documentation", "readme", "guide", "tutorial", "overview", "introduction",
            "getting started", "how to", "usage", "example", "manual", "reference",
            "docs", "walkthrough",
        ),
        regex_patterns=(
            r"explain.*concept",
            r"what.*purpose",
            r"documentation.*for",
            r"guide.*(to|using)",
            r"tutorial.*on",
            r"api.*reference",
        ),
        context_rules={
            "active_file": r"\.(md|rst|txt|adoc)$",
            "git_branch": r"docs?/.*|documentation/.*",
        },
        weight=0.9,
    ),
    ClassificationSignature(
        profile_id="debugging",
        keywords=(
            "error", "bug", "issue", "problem", "crash", "exception", "fail", "failing",
            "failed", "debug", "troubleshoot", "fix", "broken", "not working",
            "stack trace", "traceback", "panic", "unexpected",
        ),
        regex_patterns=(
            r"error.*message",
            r"stack.*trace",
            r"debug.*issue",
            r"fix.*bug",
            r"troubleshoot",
            r"why.*(fail|crash|break)",
            r"exception.*(thrown|raised)",
            r"panic.*occurred",
            r"assert.*failed",
        ),
        context_rules={
            "active_file": r"\.(go|js|ts|py|java|cpp|rs|log)$",
            "git_branch": r"bugfix/.*|hotfix/.*|debug/.*|fix/.*",
            "open_tickets": r"BUG|ERROR|ISSUE|CRASH",
        },
        weight=1.1,
    ),
    ClassificationSignature(
        profile_id="architecture",
        keywords=(
            "architecture", "design", "system", "microservice", "microservices",
            "component", "integration", "scalability", "diagram", "data flow",
            "pipeline", "workflow", "dependency", "dependencies", "layer",
        ),
        regex_patterns=(
            r"system.*design",
            r"architecture.*pattern",
            r"how.*organi[sz]e",
            r"module.*structure",
            r"component.*design",
            r"integration.*pattern",
            r"data.*flow",
            r"service.*architecture",
        ),
        context_rules={
            "git_branch": r"arch/.*|design/.*",
            "open_tickets": r"ARCH|DESIGN",
        },
        weight=0.95,
    ),
    ClassificationSignature(
        profile_id="security",
        keywords=(
            "security", "authentication", "authorization", "vulnerability", "encryption",
            "password", "token", "jwt", "oauth", "ssl", "tls", "https",
            "input validation", "sanitization", "xss", "csrf", "injection", "cve",
        ),
        regex_patterns=(
            r"authentication.*flow",
            r"authori[sz]ation.*check",
            r"vulnerabilit(y|ies)",
            r"password.*(policy|hash|storage)",
            r"token.*validation",
            r"input.*saniti[sz]ation",
            r"sql.*injection",
            r"(xss|csrf).*(prevention|protection)",
        ),
        context_rules={
            "git_branch": r"security/.*|auth/.*",
            "open_tickets": r"SECURITY|AUTH|VULN|CVE",
        },
        weight=1.05,
    ),
)


class AgentClassifier:
    """
    Query -> agent profile classifier.

    Decision order:
    1. Explicit hint naming a registered profile (used verbatim)
    2. Highest-scoring signature above the confidence threshold
    3. The registry's default profile

    Example:
        classifier = AgentClassifier(ProfileRegistry())
        result = classifier.classify("why does this test fail with a stack trace?")
        # result.profile_id == "debugging"
    """

    def __init__(
        self,
        registry: ProfileRegistry,
        signatures: Iterable[ClassificationSignature] = DEFAULT_SIGNATURES,
        min_confidence: float | None = None,
        metrics: MetricsSink | None = None,
    ):
        self.registry = registry
        self._signatures: dict[str, ClassificationSignature] = {
            s.profile_id: s for s in signatures
        }
        self.min_confidence = (
            Config.CLASSIFIER_MIN_CONFIDENCE if min_confidence is None else min_confidence
        )
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be 0-1, got {self.min_confidence}")
        self.metrics = metrics or NullMetrics()

    @property
    def signatures(self) -> dict[str, ClassificationSignature]:
        return dict(self._signatures)

    def add_signature(self, signature: ClassificationSignature) -> None:
        updated = dict(self._signatures)
        updated[signature.profile_id] = signature
        self._signatures = updated

    def remove_signature(self, profile_id: str) -> None:
        updated = dict(self._signatures)
        updated.pop(profile_id, None)
        self._signatures = updated

    def classify_query(self, query: Query) -> ClassificationResult:
        return self.classify(query.text, hint=query.agent_hint, work_context=query.work_context)

    def classify(
        self,
        query: str,
        hint: str | None = None,
        work_context: Mapping[str, Any] | None = None,
    ) -> ClassificationResult:
        """
        Classify a query into an agent profile id.

        Args:
            query: Raw query text
            hint: Optional caller-supplied profile id
            work_context: Optional caller metadata (active_file, git_branch, open_tickets)

        Returns:
            ClassificationResult (never raises for unclassifiable input)
        """
        start_time = time.perf_counter()

        if hint and self.registry.contains(hint):
            result = ClassificationResult(
                profile_id=hint,
                confidence=1.0,
                reasoning="explicit agent hint",
                outcome="explicit",
            )
        else:
            if hint:
                logger.debug(f"Ignoring unknown agent hint '{hint}'")
            try:
                result = self._infer(query or "", work_context or {})
            except ClassificationUncertain as e:
                logger.debug(f"{e}; using default profile")
                result = ClassificationResult(
                    profile_id=self.registry.default_profile_id,
                    confidence=e.confidence,
                    reasoning=str(e),
                    outcome="default",
                    alternatives=e.alternatives,
                )
            except Exception as e:
                logger.error(f"Classification failed, using default profile: {e}")
                result = ClassificationResult(
                    profile_id=self.registry.default_profile_id,
                    confidence=0.0,
                    reasoning=f"classification error: {e}",
                    outcome="default",
                )

        latency_ms = (time.perf_counter() - start_time) * 1000
        self.metrics.observe("classification.latency_ms", latency_ms)
        self.metrics.increment(f"classification.outcome.{result.outcome}")
        if latency_ms > Config.CLASSIFIER_LATENCY_BUDGET_MS:
            logger.warning(
                f"Classification latency {latency_ms:.2f}ms exceeds "
                f"{Config.CLASSIFIER_LATENCY_BUDGET_MS}ms budget"
            )
        return result

    def score_all(
        self, query: str, work_context: Mapping[str, Any] | None = None
    ) -> list[SignatureScore]:
        """Score every signature whose profile is registered, best first."""
        lowered = query.lower()
        scores = []
        for profile_id, signature in self._signatures.items():
            if not self.registry.contains(profile_id):
                continue
            scores.append(self._score(signature, lowered, work_context or {}))
        scores.sort(key=lambda s: (-s.score, s.profile_id))
        return scores

    def _infer(self, query: str, work_context: Mapping[str, Any]) -> ClassificationResult:
        if not query.strip():
            raise ClassificationUncertain(None, 0.0)

        scores = self.score_all(query, work_context)
        if not scores:
            raise ClassificationUncertain(None, 0.0)

        best, alternatives = scores[0], tuple(scores[1 : 1 + MAX_ALTERNATIVES])
        if best.score < self.min_confidence or best.score == 0.0:
            raise ClassificationUncertain(
                best.profile_id, best.score, alternatives=scores[:MAX_ALTERNATIVES]
            )

        return ClassificationResult(
            profile_id=best.profile_id,
            confidence=best.score,
            reasoning=best.reasoning,
            outcome="inferred",
            alternatives=alternatives,
        )

    @staticmethod
    def _score(
        signature: ClassificationSignature, lowered_query: str, work_context: Mapping[str, Any]
    ) -> SignatureScore:
        matched = signature.matched_keywords(lowered_query)
        keyword_score = min(1.0, len(matched) / KEYWORD_SATURATION)
        regex_score = min(1.0, float(signature.regex_matches(lowered_query)))
        context_score = signature.context_score(work_context)

        total = (
            KEYWORD_WEIGHT * keyword_score
            + REGEX_WEIGHT * regex_score
            + CONTEXT_WEIGHT * context_score
        ) * signature.weight
        score = max(0.0, min(1.0, total))

        parts = []
        if matched:
            parts.append(f"matched keywords: {', '.join(matched)}")
        if regex_score > 0:
            parts.append(f"pattern matches: {regex_score:.2f}")
        if context_score > 0:
            parts.append(f"context matches: {context_score:.2f}")

        return SignatureScore(
            profile_id=signature.profile_id,
            score=score,
            matched_keywords=tuple(matched),
            reasoning="; ".join(parts) or "no specific patterns matched",
        )
