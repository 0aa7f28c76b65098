"""
Structural feature tagging for chunks.

Each chunk carries a `features` list in its metadata. The contextual ranker
compares those tags with a profile's ordered priority features, so the tag
names here must match the names used in profiles.
"""

import re

from ..models import ContentType

_FLAGS = re.MULTILINE | re.IGNORECASE

# feature -> (content types it applies to (empty = any), pattern)
FEATURE_PATTERNS: dict[str, tuple[frozenset, re.Pattern]] = {
    "function_signatures": (
        frozenset({ContentType.CODE}),
        re.compile(
            r"^\s*(?:async\s+def|def|func|fn|pub\s+fn|function|export\s+function)\s+[\w(]",
            re.MULTILINE,
        ),
    ),
    "type_definitions": (
        frozenset({ContentType.CODE}),
        re.compile(
            r"^\s*(?:@dataclass|class\s+\w+|type\s+\w+\s+(?:struct|interface)|"
            r"(?:export\s+)?interface\s+\w+|(?:pub\s+)?struct\s+\w+|(?:pub\s+)?enum\s+\w+)",
            re.MULTILINE,
        ),
    ),
    "imports_dependencies": (
        frozenset({ContentType.CODE}),
        re.compile(
            r"^\s*(?:import\s+[\w.\"(]|from\s+[\w.]+\s+import\s|#include\s|use\s+[\w:]+;|"
            r"(?:const|let|var)\s+\w+\s*=\s*require\()",
            re.MULTILINE,
        ),
    ),
    "error_handling": (
        frozenset({ContentType.CODE}),
        re.compile(
            r"^\s*(?:try\s*[:{]|except\b|catch\b|finally\s*[:{]|raise\s+\w|throw\s+\w)|"
            r"\bif\s+err\s*!=\s*nil\b|\bErr\(|\?;",
            re.MULTILINE,
        ),
    ),
    "test_coverage": (
        frozenset({ContentType.CODE}),
        re.compile(
            r"^\s*(?:def\s+test_\w+|async\s+def\s+test_\w+|func\s+Test\w+|@pytest\.|"
            r"(?:describe|it|test)\(\s*['\"]|#\[test\])|^\s*assert\b",
            re.MULTILINE,
        ),
    ),
    "security_functions": (
        frozenset({ContentType.CODE}),
        re.compile(
            r"\b(?:authenticat\w*|authoriz\w*|password\w*|encrypt\w*|decrypt\w*|"
            r"hash_password|bcrypt|hmac|jwt|csrf|verify_token|check_permission\w*)\b",
            re.IGNORECASE,
        ),
    ),
    "input_validation": (
        frozenset({ContentType.CODE}),
        re.compile(
            r"\b(?:validate\w*|sanitiz\w*|escape\w*|is_valid\w*|isinstance|"
            r"ValidationError|ValueError)\b"
        ),
    ),
    "section_structure": (
        frozenset({ContentType.DOCUMENTATION}),
        re.compile(r"^#{1,6}\s+\S|^.+\n(?:=+|-+)\s*$", re.MULTILINE),
    ),
    "code_examples": (
        frozenset({ContentType.DOCUMENTATION, ContentType.CONVERSATION}),
        re.compile(r"^\s*(?:```|~~~)|^(?: {4}|\t)\S.*\(.*\)", re.MULTILINE),
    ),
    "api_references": (
        frozenset({ContentType.DOCUMENTATION}),
        re.compile(
            r"\b(?:GET|POST|PUT|PATCH|DELETE)\s+/\S*|^\s*(?:parameters|returns|raises|"
            r"arguments|args)\s*:|\bendpoint\b|\bAPI reference\b",
            _FLAGS,
        ),
    ),
    "tutorials": (
        frozenset({ContentType.DOCUMENTATION}),
        re.compile(
            r"\b(?:step\s+\d+|getting started|tutorial|how to|walkthrough|quickstart)\b",
            re.IGNORECASE,
        ),
    ),
    "error_messages": (
        frozenset(),
        re.compile(
            r"\b\w*(?:Error|Exception):\s|^\s*(?:ERROR|FATAL|CRITICAL)\b|\bpanic:\s|"
            r"\bfailed with\b",
            re.MULTILINE,
        ),
    ),
    "stack_traces": (
        frozenset(),
        re.compile(
            r"Traceback \(most recent call last\)|^\s*File \".+\", line \d+|"
            r"^\s*at\s+[\w.$<>]+\(.*:\d+\)|^goroutine \d+ \[",
            re.MULTILINE,
        ),
    ),
    "security_config": (
        frozenset({ContentType.CONFIG}),
        re.compile(
            r"\b\w*(?:password|secret|token|api_key|apikey|tls|ssl|auth|cors|cert)\w*\s*[:=]",
            re.IGNORECASE,
        ),
    ),
}

# Features implied by content type alone
_TYPE_FEATURES = {
    ContentType.CONFIG: ("configuration_entries",),
    ContentType.CONVERSATION: ("discussion_thread",),
}


def tag_features(text: str, content_type: ContentType, extra=()) -> list[str]:
    """
    Tag a chunk's text with structural features.

    Args:
        text: Chunk text
        content_type: Content type of the chunk
        extra: Features the chunker already knows apply

    Returns:
        Sorted list of feature names
    """
    features = set(extra)
    features.update(_TYPE_FEATURES.get(content_type, ()))
    for name, (applies_to, pattern) in FEATURE_PATTERNS.items():
        if applies_to and content_type not in applies_to:
            continue
        if pattern.search(text):
            features.add(name)
    return sorted(features)
