"""
Tests for the template compiler and its restricted evaluator.
"""

import pytest

from beni.core.templates import (
    MAX_EACH_ITEMS,
    CompileError,
    TemplateCompiler,
    format_value,
    is_truthy,
    program_to_json,
    resolve,
)
from beni.domain.models import BuildConfiguration


@pytest.fixture
def compiler():
    return TemplateCompiler()


class TestCompile:
    """Tests for TemplateCompiler.compile()."""

    def test_normalizes_and_collects_metadata(self, compiler):
        """Comments are stripped before whitespace is collapsed."""
        source = (
            "<!-- header -->\n<section>\n    <h1>{{ title }}</h1>\n"
            "    <user-card name=\"{{ user.name }}\"></user-card>\n</section>\n"
        )
        doc = compiler.compile(source, name="home")

        assert doc.name == "home"
        assert doc.raw_source == source
        assert doc.optimized == (
            '<section> <h1>{{ title }}</h1> <user-card name="{{ user.name }}"></user-card> </section>'
        )
        assert doc.referenced_variables == ("title", "user.name")
        assert doc.referenced_component_tags == ("user-card",)

    def test_render_escapes_values(self, compiler):
        doc = compiler.compile("<h1>{{ title }}</h1>")
        assert doc.render({"title": "<b>&</b>"}) == "<h1>&lt;b&gt;&amp;&lt;/b&gt;</h1>"

    def test_undefined_renders_empty(self, compiler):
        doc = compiler.compile("<p>{{ user.name }}!</p>")
        assert doc.render({}) == "<p>!</p>"
        assert doc.render({"user": None}) == "<p>!</p>"

    def test_each_exposes_this_and_index(self, compiler):
        doc = compiler.compile("<ul>{{#each items}}<li>{{ index }}:{{ this }}</li>{{/each}}</ul>")
        assert doc.render({"items": ["a", "b"]}) == "<ul><li>0:a</li><li>1:b</li></ul>"

    def test_each_over_objects_reads_item_fields(self, compiler):
        doc = compiler.compile("{{#each users}}[{{ name }}/{{ item.age }}]{{/each}}")
        data = {"users": [{"name": "Ann", "age": 30}, {"name": "Bo", "age": 4}]}
        assert doc.render(data) == "[Ann/30][Bo/4]"

    def test_each_outer_scope_still_visible(self, compiler):
        doc = compiler.compile("{{#each items}}{{ prefix }}{{ this }} {{/each}}")
        assert doc.render({"items": [1, 2], "prefix": "#"}) == "#1 #2 "

    def test_each_over_non_list_renders_nothing(self, compiler):
        doc = compiler.compile("a{{#each items}}x{{/each}}b")
        assert doc.render({"items": "nope"}) == "ab"
        assert doc.render({}) == "ab"

    def test_each_is_bounded(self, compiler):
        doc = compiler.compile("{{#each items}}x{{/each}}")
        rendered = doc.render({"items": list(range(MAX_EACH_ITEMS + 5))})
        assert len(rendered) == MAX_EACH_ITEMS

    def test_if_and_negated_if(self, compiler):
        doc = compiler.compile("{{#if ok}}yes{{/if}}{{#if !ok}}no{{/if}}")
        assert doc.render({"ok": True}) == "yes"
        assert doc.render({"ok": False}) == "no"
        assert doc.render({}) == "no"

    def test_if_inside_each(self, compiler):
        doc = compiler.compile("{{#each xs}}{{#if this}}{{ this }}{{/if}}{{/each}}")
        assert doc.render({"xs": [1, 0, 3]}) == "13"

    def test_empty_collections_are_true(self, compiler):
        """Matches the client runtime: [] and {} pass an #if."""
        doc = compiler.compile("{{#if items}}yes{{/if}}{{#if !items}}no{{/if}}")
        assert doc.render({"items": []}) == "yes"
        assert doc.render({"items": {}}) == "yes"
        assert doc.render({"items": ""}) == "no"

    def test_same_source_same_output(self, compiler):
        source = "<p>{{ a }}</p>"
        first = compiler.compile(source).render({"a": 1})
        second = compiler.compile(source).render({"a": 1})
        assert first == second == "<p>1</p>"

    def test_custom_delimiters(self):
        compiler = TemplateCompiler(delimiters=("[[", "]]"))
        doc = compiler.compile("<p>[[ name ]] {{ kept }}</p>")
        assert doc.render({"name": "x"}) == "<p>x {{ kept }}</p>"

    def test_from_config(self, tmp_path):
        config = BuildConfiguration(root=tmp_path, template_engine={"delimiters": ["<%", "%>"]})
        doc = TemplateCompiler.from_config(config).compile("<%a%>")
        assert doc.render({"a": "ok"}) == "ok"

    def test_registry_entry(self, compiler):
        doc = compiler.compile("{{#if a}}{{ b }}{{/if}}", name="t")
        entry = doc.to_registry_entry()
        assert entry["name"] == "t"
        assert entry["variables"] == ["a", "b"]
        assert entry["program"] == [["if", "a", False, [["var", "b"]]]]


class TestCompileErrors:
    """Malformed directives are rejected, never rendered."""

    @pytest.mark.parametrize(
        "source",
        [
            "<p>{{ name </p>",
            "{{#each items}}x",
            "x{{/if}}",
            "{{#each a}}{{#each b}}{{/each}}{{/each}}",
            "{{#with a}}{{/with}}",
            "{{ a + b }}",
            "{{ }}",
            "{{#if a}}{{/each}}",
        ],
    )
    def test_invalid_templates(self, compiler, source):
        with pytest.raises(CompileError) as exc_info:
            compiler.compile(source, name="bad")
        assert exc_info.value.template == "bad"

    def test_expression_is_never_evaluated(self, compiler):
        with pytest.raises(CompileError):
            compiler.compile("{{ __import__('os').system('x') }}")


class TestComponents:
    """Tests for compile_component()."""

    def test_declared_props_in_first_seen_order(self, compiler):
        component = compiler.compile_component(
            "<div>{{ props.name }} {{ props.role }} {{ props.name }} {{ other }}</div>",
            name="user-card",
        )
        assert component.declared_props == ("name", "role")

    def test_render_with_props(self, compiler):
        component = compiler.compile_component("<b>{{ props.label }}</b>")
        assert component.render({"label": "Go"}) == "<b>Go</b>"
        assert component.render() == "<b></b>"


class TestEvaluatorHelpers:
    """Tests for resolve() and format_value()."""

    def test_resolve_prefers_inner_scope(self):
        assert resolve([{"a": 1}, {"a": 2}], "a") == 1

    def test_resolve_length_and_index(self):
        scope = {"items": ["x", "y"]}
        assert resolve([scope], "items.length") == 2
        assert resolve([scope], "items.1") == "y"
        assert resolve([scope], "items.5") is None

    @pytest.mark.parametrize(
        "value,expected",
        [(None, ""), (True, "true"), (2.0, "2"), (2.5, "2.5"), ([1, "a"], "1,a"), ({"a": 1}, "")],
    )
    def test_format_value(self, value, expected):
        assert format_value(value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, False),
            (0, False),
            (float("nan"), False),
            ("", False),
            ([], True),
            ({}, True),
            ("0", True),
            (-1, True),
        ],
    )
    def test_is_truthy(self, value, expected):
        assert is_truthy(value) is expected

    def test_program_to_json(self, compiler):
        doc = compiler.compile("a{{#each xs}}{{ this }}{{/each}}")
        assert program_to_json(doc.program) == [
            ["text", "a"],
            ["each", "xs", [["var", "this"]]],
        ]
