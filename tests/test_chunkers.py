"""
Tests for the content-aware chunkers.

All chunkers run with the whitespace encoding from conftest, so one token is
one whitespace-separated word.
"""

import json

import pytest

from hybrid_rag.ingestion.chunkers import (
    BaseChunker,
    FunctionChunker,
    KeyValueChunker,
    SectionChunker,
    SemanticSimilarityChunker,
    ThreadChunker,
)
from hybrid_rag.ingestion.features import tag_features
from hybrid_rag.models import ContentType

SIZES = dict(target_tokens=64, overlap_tokens=8, min_tokens=4, max_tokens=128)

PYTHON_SOURCE = """import os
import sys

CONSTANT = 1


@decorator
def first(a, b):
    return a + b


# helper comment
class Second:
    def method(self):
        raise ValueError("bad")


async def third():
    pass
"""

MARKDOWN_SOURCE = """Intro paragraph before headings.

# Guide

Overview text.

## Install

Run pip install.

```bash
# not a heading
pip install x
```

## Usage

Use it.

# Appendix

More.
"""


class TestFunctionChunker:
    @pytest.fixture
    def chunker(self, encoding):
        return FunctionChunker(encoding=encoding, **SIZES)

    def test_splits_on_definitions(self, chunker):
        chunks = chunker.chunk(PYTHON_SOURCE, source="app.py")

        assert [c.metadata["symbol"] for c in chunks] == ["<module>", "first", "Second", "third"]
        assert [c.metadata["kind"] for c in chunks] == ["module", "function", "class", "function"]
        assert [c.index for c in chunks] == [0, 1, 2, 3]

    def test_line_ranges_and_lead_in(self, chunker):
        """Decorators and comments above a definition stay with it."""
        module, first, second, third = chunker.chunk(PYTHON_SOURCE, source="app.py")

        assert (module.metadata["start_line"], module.metadata["end_line"]) == (1, 4)
        assert first.text.startswith("@decorator\ndef first")
        assert (first.metadata["start_line"], first.metadata["end_line"]) == (7, 9)
        assert second.text.startswith("# helper comment\nclass Second")
        assert (second.metadata["start_line"], second.metadata["end_line"]) == (12, 15)
        assert (third.metadata["start_line"], third.metadata["end_line"]) == (18, 19)

    def test_metadata_and_features(self, chunker):
        module, first, second, third = chunker.chunk(PYTHON_SOURCE, source="app.py")

        assert first.metadata["language"] == "python"
        assert first.metadata["strategy"] == "semantic_function"
        assert "imports_dependencies" in module.metadata["features"]
        assert "function_signatures" in first.metadata["features"]
        assert {"type_definitions", "error_handling", "input_validation"} <= set(
            second.metadata["features"]
        )

    def test_no_definitions_is_one_module_chunk(self, chunker):
        chunks = chunker.chunk("x = 1\ny = 2\n", source="script.py")
        assert len(chunks) == 1
        assert chunks[0].metadata["symbol"] == "<module>"

    def test_other_languages(self, chunker):
        source = "package main\n\nfunc Handle(w Writer) error {\n\treturn nil\n}\n\ntype Server struct {\n}\n"
        chunks = chunker.chunk(source, source="main.go")
        assert [c.metadata["symbol"] for c in chunks] == ["<module>", "Handle", "Server"]
        assert chunks[1].metadata["language"] == "go"

    def test_oversized_definition_is_windowed(self, encoding):
        chunker = FunctionChunker(
            encoding=encoding, target_tokens=10, overlap_tokens=2, min_tokens=1, max_tokens=20
        )
        body = "def big():\n    " + " ".join(["x"] * 50)

        chunks = chunker.chunk(body, source="big.py")

        assert len(chunks) > 1
        assert all(c.token_count <= 10 for c in chunks)
        assert [c.metadata["part"] for c in chunks] == list(range(len(chunks)))
        assert all(c.metadata["symbol"] == "big" for c in chunks)

    def test_blank_input(self, chunker):
        assert chunker.chunk("   \n\n") == []

    def test_deterministic(self, chunker):
        first = [(c.text, c.metadata) for c in chunker.chunk(PYTHON_SOURCE, "app.py")]
        second = [(c.text, c.metadata) for c in chunker.chunk(PYTHON_SOURCE, "app.py")]
        assert first == second


class TestSectionChunker:
    @pytest.fixture
    def chunks(self, encoding):
        return SectionChunker(encoding=encoding, **SIZES).chunk(MARKDOWN_SOURCE, "guide.md")

    def test_splits_on_headings(self, chunks):
        assert [c.metadata["heading"] for c in chunks] == [None, "Guide", "Install", "Usage", "Appendix"]
        assert [c.metadata["heading_level"] for c in chunks] == [0, 1, 2, 2, 1]

    def test_section_hierarchy(self, chunks):
        by_heading = {c.metadata["heading"]: c.metadata for c in chunks}
        assert by_heading["Install"]["section_path"] == ["Guide", "Install"]
        assert by_heading["Install"]["parent_section"] == "Guide"
        assert by_heading["Usage"]["parent_section"] == "Guide"
        assert by_heading["Appendix"]["parent_section"] is None
        assert by_heading["Appendix"]["section_path"] == ["Appendix"]

    def test_headings_in_code_fences_ignored(self, chunks):
        install = next(c for c in chunks if c.metadata["heading"] == "Install")
        assert "# not a heading" in install.text
        assert (install.metadata["start_line"], install.metadata["end_line"]) == (7, 15)
        assert {"section_structure", "code_examples"} <= set(install.metadata["features"])


class TestThreadChunker:
    @pytest.fixture
    def chunker(self, encoding):
        return ThreadChunker(encoding=encoding, **SIZES)

    def test_sliding_window_over_turns(self, chunker):
        text = "\n".join(
            f"{'alice' if i % 2 == 0 else 'bob'}: message {i}" for i in range(10)
        )
        chunks = chunker.chunk(text, source="thread-42")

        assert [(c.metadata["turn_start"], c.metadata["turn_end"]) for c in chunks] == [(1, 6), (5, 10)]
        assert chunks[0].metadata["speakers"] == ["alice", "bob"]
        assert chunks[0].metadata["thread"] == "thread-42"
        assert "discussion_thread" in chunks[0].metadata["features"]
        # Overlapping turns appear in both windows
        assert "message 4" in chunks[0].text and "message 4" in chunks[1].text

    def test_continuation_lines_stay_with_turn(self, chunker):
        turns = chunker.split_turns(
            'alice: see trace\n  File "x.py", line 3\nbob: thanks'
        )
        assert [speaker for speaker, _ in turns] == ["alice", "bob"]
        assert 'File "x.py"' in turns[0][1]

    def test_paragraph_fallback(self, chunker):
        assert chunker.split_turns("para one\n\npara two") == [(None, "para one"), (None, "para two")]

    def test_invalid_overlap(self, encoding):
        with pytest.raises(ValueError):
            ThreadChunker(turns_per_chunk=2, turn_overlap=2, encoding=encoding, **SIZES)


class TestKeyValueChunker:
    @pytest.fixture
    def chunker(self, encoding):
        return KeyValueChunker(encoding=encoding, **SIZES)

    def test_json_top_level_keys(self, chunker):
        chunks = chunker.chunk('{"database": {"host": "x"}, "debug": true}', "settings.json")

        assert [c.metadata["key"] for c in chunks] == ["database", "debug"]
        assert chunks[0].text == json.dumps({"database": {"host": "x"}}, indent=2)
        assert chunks[0].metadata["format"] == "json"

    def test_yaml_entries_keep_comments(self, chunker):
        text = (
            "# Database settings\n"
            "database:\n"
            "  host: localhost\n"
            "  password: secret\n"
            "\n"
            "logging:\n"
            "  level: INFO\n"
        )
        database, logging = chunker.chunk(text, "config.yaml")

        assert database.metadata["key"] == "database"
        assert database.text.startswith("# Database settings")
        assert (database.metadata["start_line"], database.metadata["end_line"]) == (1, 4)
        assert (logging.metadata["start_line"], logging.metadata["end_line"]) == (6, 7)
        assert "security_config" in database.metadata["features"]
        assert "security_config" not in logging.metadata["features"]
        assert "configuration_entries" in logging.metadata["features"]

    def test_dotenv_entries(self, chunker):
        chunks = chunker.chunk("DB_HOST=localhost\nexport API_KEY=abc\n", ".env")
        assert [c.metadata["key"] for c in chunks] == ["DB_HOST", "API_KEY"]
        assert {c.metadata["format"] for c in chunks} == {"dotenv"}

    def test_ini_sections(self, chunker):
        chunks = chunker.chunk("[server]\nport = 80\n\n[auth]\ntoken = x\n", "app.ini")
        assert [c.metadata["key"] for c in chunks] == ["server", "auth"]

    @pytest.mark.parametrize(
        "text,expected",
        [
            ('{"a": 1}', "json"),
            ("[server]\nport = 1\n", "ini"),
            ("A=1\nB=2\n", "dotenv"),
            ("a: 1\nb: 2\n", "yaml"),
        ],
    )
    def test_detect_format_from_content(self, text, expected):
        assert KeyValueChunker.detect_format(text) == expected


class TestSemanticSimilarityChunker:
    @pytest.fixture
    def chunker(self, encoding):
        return SemanticSimilarityChunker(encoding=encoding, **SIZES)

    def test_small_paragraphs_merged(self, chunker):
        chunks = chunker.chunk("a b\n\nc d\n\ne f")
        assert [c.text for c in chunks] == ["a b\n\nc d", "e f"]

    def test_long_paragraph_windowed_with_overlap(self, chunker):
        words = [f"w{i}" for i in range(150)]
        chunks = chunker.chunk(" ".join(words))

        assert len(chunks) == 3
        assert [c.metadata["part"] for c in chunks] == [0, 1, 2]
        assert chunks[1].text.split()[0] == "w56"
        assert chunker.estimate_chunk_count(" ".join(words)) == 3

    def test_invalid_sizes(self, encoding):
        with pytest.raises(ValueError):
            SemanticSimilarityChunker(target_tokens=10, overlap_tokens=10, encoding=encoding)
        with pytest.raises(ValueError):
            SemanticSimilarityChunker(target_tokens=100, max_tokens=50, encoding=encoding)


def test_base_chunker_requires_split(encoding):
    """The shared pipeline cannot be instantiated without a structural split."""
    with pytest.raises(TypeError):
        BaseChunker(encoding=encoding)

    class Incomplete(BaseChunker):
        pass

    with pytest.raises(TypeError):
        Incomplete(encoding=encoding)


class TestFeatureTagging:
    def test_type_scoped_features(self):
        assert "function_signatures" in tag_features("def f():\n    pass", ContentType.CODE)
        assert "function_signatures" not in tag_features("def f():\n    pass", ContentType.DOCUMENTATION)

    def test_cross_type_features(self):
        text = 'Traceback (most recent call last):\n  File "a.py", line 3\nKeyError: \'x\''
        features = tag_features(text, ContentType.CONVERSATION)
        assert {"stack_traces", "error_messages", "discussion_thread"} <= set(features)

    def test_extra_features_kept_and_sorted(self):
        features = tag_features("plain", ContentType.UNKNOWN, extra=("zeta", "alpha"))
        assert features == ["alpha", "zeta"]
