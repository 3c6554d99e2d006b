"""Tests for TypeClassifier and the syntactic type provider behind it."""

from __future__ import annotations

import logging

from reactive_compiler.classifier import TypeClassifier
from reactive_compiler.config import CompilerConfig
from reactive_compiler.filesystem import MemoryFileSystem
from reactive_compiler.index import DeclarationIndex
from reactive_compiler.nodes import walk
from reactive_compiler.parser import Parser, TreeSitterParserFactory
from reactive_compiler.type_provider import SourceTypeProvider

APP = "src/App.tsx"

STORE_SOURCE = """\
import { ref } from "typecomposer";

export const counter = ref(0);
export const label = "plain";
"""


def _classifier(
    source: str,
    files: dict[str, str] | None = None,
    path: str = APP,
    config: CompilerConfig | None = None,
):
    config = config or CompilerConfig()
    parser = Parser(TreeSitterParserFactory())
    fs = MemoryFileSystem(files or {})
    index = DeclarationIndex(config, fs, parser)
    source_file = parser.parse_file(path, source)
    provider = SourceTypeProvider(source_file, index, config)
    return source_file, TypeClassifier(source_file, provider, config, index)


def _last_use(source_file, name: str):
    uses = [
        n
        for n in walk(source_file.root)
        if n.type == "identifier" and source_file.node_text(n) == name
    ]
    return uses[-1]


def _member(source_file, text: str):
    return next(
        n
        for n in walk(source_file.root)
        if n.type == "member_expression" and source_file.node_text(n) == text
    )


class TestIdentifierClassification:
    def test_container_created_by_imported_ref(self):
        sf, classifier = _classifier(
            'import { ref } from "typecomposer";\nconst count = ref(0);\nuse(count);'
        )
        assert classifier.is_reactive(_last_use(sf, "count"))

    def test_plain_value_is_not_reactive(self):
        sf, classifier = _classifier("const count = 0;\nuse(count);")
        assert not classifier.is_reactive(_last_use(sf, "count"))

    def test_object_literal_is_not_reactive(self):
        sf, classifier = _classifier(
            'import { ref } from "typecomposer";\nconst box = { inner: ref(0) };\nuse(box);'
        )
        assert not classifier.is_reactive(_last_use(sf, "box"))

    def test_local_helper_named_ref_is_not_reactive(self):
        sf, classifier = _classifier(
            "function ref(v) { return v; }\nconst count = ref(0);\nuse(count);"
        )
        assert not classifier.is_reactive(_last_use(sf, "count"))

    def test_annotated_container_type(self):
        sf, classifier = _classifier(
            'import { Ref } from "typecomposer";\nfunction show(value: Ref<number>) { use(value); }'
        )
        assert classifier.is_reactive(_last_use(sf, "value"))

    def test_unbound_identifier_is_not_a_candidate(self):
        sf, classifier = _classifier("use(missing);")
        assert not classifier.is_candidate(_last_use(sf, "missing"))

    def test_call_target_is_not_a_candidate(self):
        sf, classifier = _classifier(
            'import { ref } from "typecomposer";\nconst make = ref(0);\nmake();'
        )
        assert not classifier.is_candidate(_last_use(sf, "make"))


class TestMemberClassification:
    def test_class_field_holding_a_container(self):
        sf, classifier = _classifier(
            'import { ref } from "typecomposer";\n'
            "class Panel {\n  open = ref(false);\n  toggle() { use(this.open); }\n}\n"
        )
        assert classifier.is_reactive(_member(sf, "this.open"))

    def test_class_field_holding_a_plain_value(self):
        sf, classifier = _classifier(
            "class Panel {\n  open = false;\n  toggle() { use(this.open); }\n}\n"
        )
        assert not classifier.is_reactive(_member(sf, "this.open"))

    def test_member_outside_a_class_is_not_a_candidate(self):
        sf, classifier = _classifier("const o = { a: 1 };\nuse(o.a);")
        assert not classifier.is_candidate(_member(sf, "o.a"))


class TestCrossFileClassification:
    def test_container_exported_by_a_project_module(self):
        sf, classifier = _classifier(
            'import { counter, label } from "./store";\nuse(counter, label);',
            files={"src/store.ts": STORE_SOURCE},
        )
        assert classifier.is_reactive(_last_use(sf, "counter"))
        assert not classifier.is_reactive(_last_use(sf, "label"))

    def test_same_name_from_another_package_is_not_reactive(self):
        typings = "export declare function ref<T>(value: T): T;\n"
        sf, classifier = _classifier(
            'import { ref } from "other-lib";\nconst count = ref(0);\nuse(count);',
            files={
                "node_modules/other-lib/package.json": "{}",
                "node_modules/other-lib/index.d.ts": typings,
            },
        )
        assert not classifier.is_reactive(_last_use(sf, "count"))


class TestReactiveCallee:
    def test_imported_primitive(self):
        sf, classifier = _classifier('import { computed } from "typecomposer";\ncomputed(f);')
        callee = _last_use(sf, "computed")
        assert classifier.is_reactive_callee(callee, "computed")

    def test_name_mismatch(self):
        sf, classifier = _classifier('import { computed } from "typecomposer";\ncomputed(f);')
        callee = _last_use(sf, "computed")
        assert not classifier.is_reactive_callee(callee, "ref")

    def test_local_function(self):
        sf, classifier = _classifier("function computed(f) { return f; }\ncomputed(g);")
        callee = _last_use(sf, "computed")
        assert not classifier.is_reactive_callee(callee, "computed")

    def test_matches_reactive_module_paths(self):
        _, classifier = _classifier("")
        assert classifier.matches_reactive_module("node_modules/typecomposer/core/ref/index.d.ts")
        assert not classifier.matches_reactive_module("node_modules/typecomposer/core/dom/index.d.ts")
        assert not classifier.matches_reactive_module("")


UNSEEDED = CompilerConfig(reactive_exports={})

PACKAGE_JSON = "node_modules/typecomposer/package.json"


class TestPackageTypings:
    def test_typing_file_with_reactive_runtime_counterpart(self):
        files = {
            PACKAGE_JSON: "{}",
            "node_modules/typecomposer/types/core/ref/index.d.ts": (
                "export declare class Ref<T> { value: T; }\n"
            ),
            "node_modules/typecomposer/core/ref/index.js": "export class Ref {}\n",
        }
        sf, classifier = _classifier(
            'import { Ref } from "typecomposer";\nfunction show(value: Ref<number>) { use(value); }',
            files=files,
            config=UNSEEDED,
        )
        assert classifier.is_reactive(_last_use(sf, "value"))

    def test_typing_file_without_runtime_counterpart(self):
        files = {
            PACKAGE_JSON: "{}",
            "node_modules/typecomposer/types/core/ref/index.d.ts": (
                "export declare class Ref<T> { value: T; }\n"
            ),
        }
        sf, classifier = _classifier(
            'import { Ref } from "typecomposer";\nfunction show(value: Ref<number>) { use(value); }',
            files=files,
            config=UNSEEDED,
        )
        assert not classifier.is_reactive(_last_use(sf, "value"))

    def test_renamed_reexport_is_followed_to_its_declaration(self):
        files = {
            PACKAGE_JSON: "{}",
            "node_modules/typecomposer/index.d.ts": (
                'export { Ref as Box } from "./core/ref/index";\n'
            ),
            "node_modules/typecomposer/core/ref/index.d.ts": (
                "export declare class Ref<T> { value: T; }\n"
            ),
        }
        sf, classifier = _classifier(
            'import { Box } from "typecomposer";\nfunction show(value: Box<number>) { use(value); }',
            files=files,
            config=UNSEEDED,
        )
        assert classifier.is_reactive(_last_use(sf, "value"))

    def test_star_reexport_is_followed(self):
        files = {
            PACKAGE_JSON: "{}",
            "node_modules/typecomposer/dist/index.d.ts": 'export * from "../src/ref/index";\n',
            "node_modules/typecomposer/src/ref/index.d.ts": (
                "export declare class Ref<T> { value: T; }\n"
            ),
        }
        parser = Parser(TreeSitterParserFactory())
        index = DeclarationIndex(UNSEEDED, MemoryFileSystem(files), parser)
        declaring = index.declaring_file(APP, "typecomposer", "Ref")
        assert declaring == "node_modules/typecomposer/src/ref/index.d.ts"


class TestUnresolvableTypes:
    def test_alias_cycle_is_non_reactive(self, caplog):
        sf, classifier = _classifier(
            "type A = B;\ntype B = A;\nfunction show(value: A) { use(value); }"
        )
        with caplog.at_level(logging.DEBUG, logger="reactive_compiler.classifier"):
            assert not classifier.is_reactive(_last_use(sf, "value"))
        assert any(
            r.levelno == logging.DEBUG and "treated as non-reactive" in r.getMessage()
            for r in caplog.records
        )

    def test_function_value_is_non_reactive(self):
        sf, classifier = _classifier(
            'import { ref } from "typecomposer";\nconst make = () => ref(0);\nuse(make);'
        )
        assert not classifier.is_reactive(_last_use(sf, "make"))
