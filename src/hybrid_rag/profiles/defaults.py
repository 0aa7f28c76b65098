"""Predefined agent profiles for common agent types."""

from ..models import ChunkingStrategy, ContentType
from .models import AgentProfile, ContextWindow, RetrievalWeights

GENERAL_PROFILE_ID = "general"

CODE_ANALYSIS_PROFILE = AgentProfile(
    profile_id="code_analysis",
    name="Code Analysis Agent",
    description="Optimized for code analysis, function understanding, and syntax-aware context",
    context_window=ContextWindow(max_chunks=10, max_tokens=12000),
    chunking_strategy=ChunkingStrategy.SEMANTIC_FUNCTION,
    priority_features=(
        "function_signatures",
        "type_definitions",
        "imports_dependencies",
        "error_handling",
        "test_coverage",
    ),
    weights=RetrievalWeights(vector=0.5, keyword=0.5),
    content_weights={
        ContentType.CODE: 1.0,
        ContentType.DOCUMENTATION: 0.6,
        ContentType.CONVERSATION: 0.3,
        ContentType.CONFIG: 0.4,
        ContentType.UNKNOWN: 0.2,
    },
    capabilities=("code_analysis", "syntax_understanding", "dependency_tracking"),
)

DOCUMENTATION_PROFILE = AgentProfile(
    profile_id="documentation",
    name="Documentation Agent",
    description="Optimized for comprehensive documentation and explanatory context",
    context_window=ContextWindow(max_chunks=20, max_tokens=32000),
    chunking_strategy=ChunkingStrategy.HIERARCHICAL_SECTION,
    priority_features=(
        "section_structure",
        "code_examples",
        "api_references",
        "tutorials",
    ),
    weights=RetrievalWeights(vector=0.7, keyword=0.3),
    content_weights={
        ContentType.CODE: 0.5,
        ContentType.DOCUMENTATION: 1.0,
        ContentType.CONVERSATION: 0.6,
        ContentType.CONFIG: 0.3,
        ContentType.UNKNOWN: 0.4,
    },
    capabilities=("documentation_analysis", "content_organization"),
)

DEBUGGING_PROFILE = AgentProfile(
    profile_id="debugging",
    name="Debugging Agent",
    description="Optimized for precise, error-focused context and debugging tasks",
    context_window=ContextWindow(max_chunks=6, max_tokens=8000),
    chunking_strategy=ChunkingStrategy.SEMANTIC_FUNCTION,
    priority_features=(
        "error_messages",
        "stack_traces",
        "error_handling",
        "test_coverage",
    ),
    # Exact error strings matter more than paraphrase
    weights=RetrievalWeights(vector=0.4, keyword=0.6),
    content_weights={
        ContentType.CODE: 0.9,
        ContentType.DOCUMENTATION: 0.4,
        ContentType.CONVERSATION: 0.7,
        ContentType.CONFIG: 0.5,
        ContentType.UNKNOWN: 0.3,
    },
    capabilities=("error_analysis", "stack_trace_analysis", "log_analysis"),
)

ARCHITECTURE_PROFILE = AgentProfile(
    profile_id="architecture",
    name="Architecture Agent",
    description="Optimized for holistic, system-wide context and architectural analysis",
    context_window=ContextWindow(max_chunks=30, max_tokens=48000),
    chunking_strategy=ChunkingStrategy.HIERARCHICAL_SECTION,
    priority_features=(
        "section_structure",
        "type_definitions",
        "imports_dependencies",
        "configuration_entries",
    ),
    weights=RetrievalWeights(vector=0.7, keyword=0.3),
    content_weights={
        ContentType.CODE: 0.7,
        ContentType.DOCUMENTATION: 0.9,
        ContentType.CONVERSATION: 0.8,
        ContentType.CONFIG: 0.8,
        ContentType.UNKNOWN: 0.7,
    },
    capabilities=("architecture_analysis", "system_design", "dependency_analysis"),
)

SECURITY_PROFILE = AgentProfile(
    profile_id="security",
    name="Security Agent",
    description="Optimized for vulnerability-focused context and security analysis",
    context_window=ContextWindow(max_chunks=12, max_tokens=20000),
    chunking_strategy=ChunkingStrategy.SEMANTIC_FUNCTION,
    priority_features=(
        "security_functions",
        "input_validation",
        "security_config",
        "error_handling",
    ),
    weights=RetrievalWeights(vector=0.5, keyword=0.5),
    content_weights={
        ContentType.CODE: 0.9,
        ContentType.DOCUMENTATION: 0.5,
        ContentType.CONVERSATION: 0.8,
        ContentType.CONFIG: 0.9,
        ContentType.UNKNOWN: 0.6,
    },
    capabilities=("security_analysis", "vulnerability_detection", "security_audit"),
)

GENERAL_PROFILE = AgentProfile(
    profile_id=GENERAL_PROFILE_ID,
    name="General Agent",
    description="General-purpose profile for balanced context retrieval",
    context_window=ContextWindow(max_chunks=10, max_tokens=16000),
    chunking_strategy=ChunkingStrategy.SEMANTIC_SIMILARITY,
    priority_features=(),
    weights=RetrievalWeights(vector=0.6, keyword=0.4),
    content_weights={
        ContentType.CODE: 0.6,
        ContentType.DOCUMENTATION: 0.7,
        ContentType.CONVERSATION: 0.5,
        ContentType.CONFIG: 0.5,
        ContentType.UNKNOWN: 0.4,
    },
    capabilities=("general_analysis", "balanced_retrieval"),
)

PREDEFINED_PROFILES = (
    CODE_ANALYSIS_PROFILE,
    DOCUMENTATION_PROFILE,
    DEBUGGING_PROFILE,
    ARCHITECTURE_PROFILE,
    SECURITY_PROFILE,
    GENERAL_PROFILE,
)

PREDEFINED_PROFILE_IDS = frozenset(p.profile_id for p in PREDEFINED_PROFILES)
