"""Tests for capture-key routing of reactive reads (computed, ref, refProperty)."""

from __future__ import annotations

from reactive_compiler.capture import KeyAllocator, NestedEdits
from reactive_compiler.compiler import ReactiveCompiler
from reactive_compiler.filesystem import MemoryFileSystem
from reactive_compiler.nodes import walk
from reactive_compiler.parser import Parser, TreeSitterParserFactory

HEADER = 'import { ref, computed, refProperty, Component } from "typecomposer";\n'


def _analyze(body: str, path: str = "src/store.ts") -> str:
    compiler = ReactiveCompiler(file_system=MemoryFileSystem())
    return compiler.analyze(path, HEADER + body)


class TestKeyAllocator:
    def test_first_key_is_the_prefix(self):
        assert KeyAllocator("const a = 1;", "_c__tc_").key() == "_c__tc_"

    def test_keys_already_in_the_text_are_skipped(self):
        keys = KeyAllocator("// _c__tc_ is taken", "_c__tc_")
        assert keys.key(0) == "_c__tc_1_"
        assert keys.key(1) == "_c__tc_2_"

    def test_levels_are_stable(self):
        keys = KeyAllocator("", "_k_")
        assert keys.key(1) == "_k_1_"
        assert keys.key(0) == "_k_"


class TestNestedEdits:
    def test_outer_commit_absorbs_inner_edits(self):
        source_file = Parser(TreeSitterParserFactory()).parse_file("a.ts", "f(g(x));")
        calls = [n for n in walk(source_file.root) if n.type == "call_expression"]
        outer, inner = calls[0], calls[1]
        nested = NestedEdits(source_file.source)
        nested.commit(inner, "G")
        assert nested.height(outer) == 1
        nested.commit(outer, "F(" + nested.render(inner) + ")")
        assert [e.text for e in nested.edits] == ["F(G)"]
        assert nested.height(outer) == 2


class TestComputedFunction:
    def test_zero_parameter_closure_gets_a_capture_key(self):
        output = _analyze("const a = ref(1);\nconst b = computed(() => a.value * 2);\n")
        assert "computed((_c__tc_) => _c__tc_.put(a.value) * 2)" in output

    def test_unused_parameter_is_reused_as_key(self):
        output = _analyze("const a = ref(1);\nconst b = computed((c) => a.value);\n")
        assert "computed((c) => c.put(a.value))" in output

    def test_used_parameter_is_wrapped(self):
        output = _analyze("const a = ref(1);\nconst b = computed((x) => a.value + x);\n")
        assert "computed((_c__tc_) => { return ((x) => _c__tc_.put(a.value) + x)(); })" in output

    def test_nested_closures_get_distinct_keys(self):
        output = _analyze(
            "const a = ref(1);\n"
            "const b = computed(() => a.value + computed(() => a.value).value);\n"
        )
        assert (
            "computed((_c__tc_1_) => _c__tc_1_.put(a.value) + "
            "computed((_c__tc_) => _c__tc_.put(a.value)).value)"
        ) in output

    def test_key_avoids_names_in_the_file(self):
        output = _analyze(
            "// _c__tc_\nconst a = ref(1);\nconst b = computed(() => a.value);\n"
        )
        assert "computed((_c__tc_1_) => _c__tc_1_.put(a.value))" in output

    def test_locals_are_not_routed(self):
        output = _analyze("const b = computed(() => { const local = ref(0); return local.value; });\n")
        assert ".put(" not in output

    def test_plain_values_are_not_routed(self):
        source = "const a = 1;\nconst b = computed(() => a + 1);\n"
        assert _analyze(source) == HEADER + source

    def test_rewrite_is_idempotent(self):
        first = _analyze("const a = ref(1);\nconst b = computed(() => a.value * 2);\n")
        compiler = ReactiveCompiler(file_system=MemoryFileSystem())
        assert compiler.analyze("src/store.ts", first) == first


class TestTaggedComputed:
    def test_template_literal_becomes_a_closure(self):
        output = _analyze('const name = ref("x");\nconst greeting = computed`Hello ${name.value}`;\n')
        assert "computed((_c__tc_) => `Hello ${_c__tc_.put(name.value)}`)" in output


class TestRefDefaults:
    def test_primitive_defaults(self):
        output = _analyze(
            "const s = ref<string>();\nconst n = ref<number>();\nconst f = ref<boolean>();\n"
        )
        assert 'ref<string>("")' in output
        assert "ref<number>(0)" in output
        assert "ref<boolean>(false)" in output

    def test_array_and_nullable_defaults(self):
        output = _analyze("const xs = ref<number[]>();\nconst maybe = ref<string | null>();\n")
        assert "ref<number[]>([])" in output
        assert "ref<string | null>(null)" in output

    def test_interface_default(self):
        output = _analyze(
            "interface Point { x: number; y: number; label?: string }\n"
            "const p = ref<Point>();\n"
        )
        assert "ref<Point>({ x: 0, y: 0 })" in output

    def test_explicit_argument_is_kept(self):
        source = "const n = ref<number>(5);\n"
        assert _analyze(source) == HEADER + source


class TestRefProperty:
    def test_component_field_gets_name_and_owner(self):
        output = _analyze(
            "export class Counter extends Component {\n  count = refProperty(0);\n}\n",
            path="src/Counter.tsx",
        )
        assert "count = refProperty(0, 'count', this);" in output

    def test_plain_class_field_gets_name_only(self):
        output = _analyze("class Model {\n  size = refProperty(1);\n}\n")
        assert "size = refProperty(1, 'size');" in output

    def test_rewritten_field_is_left_alone(self):
        source = "class Model {\n  size = refProperty(1, 'size');\n}\n"
        assert _analyze(source) == HEADER + source
