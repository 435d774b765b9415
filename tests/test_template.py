"""Tests for watcher/template.py JSON template compiler."""

import dataclasses
import io

import pytest

from watcher.errors import CompileError
from watcher.template import (
    CompositeNode,
    DynamicValueNode,
    IteratingNode,
    RootNode,
    StaticValueNode,
    compile_template,
    strip_comments,
)


def compile_text(text: str) -> RootNode:
    return compile_template(io.BytesIO(text.encode("utf-8")))


class TestStripComments:
    """Tests for strip_comments."""

    def test_line_comment_removed(self):
        assert strip_comments('{"a": 1} // trailing').strip() == '{"a": 1}'

    def test_block_comment_removed(self):
        assert strip_comments('{/* c */"a": 1}') == '{ "a": 1}'

    def test_comment_markers_inside_strings_kept(self):
        text = '{"url": "http://example.com/*x*/"}'
        assert strip_comments(text) == text

    def test_escaped_quote_inside_string(self):
        text = '{"a": "say \\"//hi\\""}'
        assert strip_comments(text) == text

    def test_comment_separates_tokens(self):
        """コメントは空白としてトークンを区切る"""
        with pytest.raises(CompileError, match="invalid JSON"):
            compile_text('{"v": 1/* x */2}')

    def test_block_comment_keeps_line_count(self):
        text = '{\n/* one\ntwo\n*/\n"a": 1}'
        assert strip_comments(text).count("\n") == text.count("\n")

    def test_unterminated_block_comment(self):
        with pytest.raises(CompileError, match="line 2"):
            strip_comments('{\n/* never closed')


class TestCompileTemplate:
    """Tests for compile_template tree construction."""

    def test_static_values(self):
        root = compile_text('{"type": "Feature", "count": 3, "flag": null}')

        assert root.children == (
            StaticValueNode("type", "Feature"),
            StaticValueNode("count", 3),
            StaticValueNode("flag", None),
        )

    def test_property_expression(self):
        root = compile_text('{"name": "${st:name}"}')

        assert root.children == (DynamicValueNode("name", "st:name"),)

    def test_filter_expression(self):
        root = compile_text('{"active": "$${st:active = true}"}')

        assert root.children == (
            DynamicValueNode("active", "st:active = true", is_filter=True),
        )

    def test_source_on_nested_object(self):
        root = compile_text('{"station": {"$source": "st:Station", "id": "${@id}"}}')

        (station,) = root.children
        assert isinstance(station, CompositeNode)
        assert station.source == "st:Station"
        assert station.children == (DynamicValueNode("id", "@id"),)

    def test_array_becomes_iterating_node(self):
        root = compile_text('{"features": [{"a": 1}, "x"]}')

        (features,) = root.children
        assert isinstance(features, IteratingNode)
        assert features.children == (
            CompositeNode(None, None, (StaticValueNode("a", 1),)),
            StaticValueNode(None, "x"),
        )

    def test_root_context_and_source(self):
        root = compile_text(
            '{"@context": {"schema": "https://schema.org/", "list": [1, 2]},'
            ' "$source": "st:Station", "a": 1}'
        )

        assert root.source == "st:Station"
        assert root.context["schema"] == "https://schema.org/"
        assert root.context["list"] == (1, 2)
        assert root.children == (StaticValueNode("a", 1),)

    def test_tree_is_immutable(self):
        root = compile_text('{"@context": {"a": 1}, "b": [1]}')

        with pytest.raises(dataclasses.FrozenInstanceError):
            root.source = "x"
        with pytest.raises(TypeError):
            root.context["a"] = 2
        assert isinstance(root.children, tuple)

    def test_comments_allowed(self):
        root = compile_text(
            '{\n  // header\n  "a": 1, /* inline */ "b": "${x}"\n}'
        )

        assert [child.key for child in root.children] == ["a", "b"]

    def test_utf8_bom_accepted(self):
        root = compile_template(io.BytesIO(b'\xef\xbb\xbf{"a": 1}'))

        assert root.children == (StaticValueNode("a", 1),)

    def test_to_dict(self):
        root = compile_text(
            '{"@context": {"s": "https://schema.org/"}, "f": [{"$source": "x", "n": "${n}"}]}'
        )

        assert root.to_dict() == {
            "type": "root",
            "context": {"s": "https://schema.org/"},
            "source": None,
            "children": [
                {
                    "type": "iterating",
                    "key": "f",
                    "children": [
                        {
                            "type": "composite",
                            "key": None,
                            "source": "x",
                            "children": [
                                {"type": "property", "key": "n", "expression": "n"}
                            ],
                        }
                    ],
                }
            ],
        }


class TestCompileErrors:
    """Tests for structural errors."""

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "{",
            '{"a": }',
            '{"a": 1,}',
        ],
    )
    def test_invalid_json(self, text):
        with pytest.raises(CompileError, match="invalid JSON"):
            compile_text(text)

    @pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
    def test_non_standard_constants_rejected(self, constant):
        with pytest.raises(CompileError, match="invalid JSON constant"):
            compile_text('{"v": ' + constant + "}")

    def test_error_reports_position(self):
        with pytest.raises(CompileError, match="line 3"):
            compile_text('{\n"a": 1,\n"b" 2\n}')

    def test_root_must_be_object(self):
        with pytest.raises(CompileError, match="root must be a JSON object"):
            compile_text("[1, 2]")

    def test_invalid_utf8(self):
        with pytest.raises(CompileError, match="UTF-8"):
            compile_template(io.BytesIO(b'{"a": "\xff"}'))

    def test_unterminated_expression(self):
        with pytest.raises(CompileError, match="unterminated expression"):
            compile_text('{"a": "${name"}')

    def test_empty_expression(self):
        with pytest.raises(CompileError, match="empty expression"):
            compile_text('{"a": "${ }"}')

    def test_multiple_expressions_rejected(self):
        """1つの値に複数の式は書けない"""
        with pytest.raises(CompileError, match="unexpected"):
            compile_text('{"a": "${a} and ${b}"}')

    @pytest.mark.parametrize("source", ['""', "1", "null", '["a"]'])
    def test_invalid_source(self, source):
        with pytest.raises(CompileError, match=r"\$source"):
            compile_text('{"a": {"$source": ' + source + "}}")
