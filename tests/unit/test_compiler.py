"""End-to-end tests for ReactiveCompiler: analyze, watch_change and assign_tag."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from reactive_compiler.compiler import ReactiveCompiler
from reactive_compiler.errors import AnalysisSuperseded
from reactive_compiler.filesystem import MemoryFileSystem
from reactive_compiler.models import ChangeEvent
from reactive_compiler.type_provider import SourceTypeProvider

BUTTON_PATH = "src/MyButton.tsx"
TEMPLATE_PATH = "src/MyButton.template"

BUTTON_SOURCE = """\
import { Component, ref } from "typecomposer";

export class MyButton extends Component {
  visible = ref(true);

  template() {
    return <div>{this.visible ? <span>on</span> : <span>off</span>}</div>;
  }
}
"""

LIST_SOURCE = """\
import { Component, ref } from "typecomposer";

export class TodoList extends Component {
  items = ref([]);

  template() {
    return (
      <ul>
        {this.items.map(i => <li key={i.id}>{i.name}</li>)}
      </ul>
    );
  }
}
"""

BARE_BUTTON = """\
import { Component } from "typecomposer";

export class MyButton extends Component {
  label = "go";
}
"""

FANCY_SOURCE = """\
import { Component, Register } from "typecomposer";

@Register({ tag: "my-button" })
export class Fancy extends Component {}
"""


def _compiler(files: dict[str, str] | None = None):
    fs = MemoryFileSystem(files or {})
    return ReactiveCompiler(file_system=fs), fs


class TestAnalyze:
    def test_condition_is_compiled_and_lowered(self):
        compiler, _ = _compiler({BUTTON_PATH: BUTTON_SOURCE})
        output = compiler.analyze(BUTTON_PATH, BUTTON_SOURCE)
        assert output.count(".put(") == 1
        assert (
            "return TypeComposer.createElement(\"div\", null, "
            "TypeComposer.computed((_c__tc_) => { return (_c__tc_.put(this.visible) ? "
            'TypeComposer.createElement("span", null, "on") : '
            'TypeComposer.createElement("span", null, "off")); }));'
        ) in output

    def test_loop_is_compiled_and_lowered(self):
        compiler, _ = _compiler({"src/TodoList.tsx": LIST_SOURCE})
        output = compiler.analyze("src/TodoList.tsx", LIST_SOURCE)
        assert "_c__tc_.put(this.items).map(i => " in output
        assert 'TypeComposer.createElement("li", { "key": _c__tc_.cache(i.id) }, i.name)' in output

    def test_output_is_idempotent(self):
        compiler, _ = _compiler({BUTTON_PATH: BUTTON_SOURCE})
        first = compiler.analyze(BUTTON_PATH, BUTTON_SOURCE)
        assert compiler.analyze(BUTTON_PATH, first) == first

    def test_file_without_components_is_unchanged(self):
        compiler, _ = _compiler()
        source = "export const answer = 42;\n"
        assert compiler.analyze("src/answer.ts", source) == source

    def test_components_get_tags(self):
        compiler, _ = _compiler({BUTTON_PATH: BUTTON_SOURCE})
        compiler.analyze(BUTTON_PATH, BUTTON_SOURCE)
        declarations = compiler.components(BUTTON_PATH)
        assert [(d.name, d.tag) for d in declarations] == [("MyButton", "my-button")]

    def test_malformed_template_keeps_original_text(self):
        source = BUTTON_SOURCE.replace("<span>off</span>", "<span>{)}</span>")
        compiler, _ = _compiler({BUTTON_PATH: source})
        assert compiler.analyze(BUTTON_PATH, source) == source

    def test_sibling_template_is_injected_and_lowered(self):
        files = {
            BUTTON_PATH: BARE_BUTTON,
            TEMPLATE_PATH: 'import { Icon } from "./Icon";\n<button class="btn"><Icon /></button>\n',
        }
        compiler, _ = _compiler(files)
        output = compiler.analyze(BUTTON_PATH, BARE_BUTTON)
        assert 'import { Icon } from "./Icon";' in output
        assert 'import "./MyButton.template";' in output
        assert (
            'TypeComposer.createElement("button", { "class": "btn" }, '
            "TypeComposer.createElement(Icon, null))"
        ) in output
        assert compiler.template_owner(TEMPLATE_PATH) == (BUTTON_PATH, "MyButton")
        assert compiler.components(BUTTON_PATH)[0].template_path == TEMPLATE_PATH

    def test_template_injection_is_idempotent(self):
        files = {BUTTON_PATH: BARE_BUTTON, TEMPLATE_PATH: "<p>hello</p>\n"}
        compiler, _ = _compiler(files)
        first = compiler.analyze(BUTTON_PATH, BARE_BUTTON)
        assert compiler.analyze(BUTTON_PATH, first) == first

    def test_superseded_analysis_raises(self):
        state = {"nested": False}

        def provider_factory(source_file, index, config):
            if not state["nested"]:
                state["nested"] = True
                compiler.analyze(source_file.path, BUTTON_SOURCE)
            return SourceTypeProvider(source_file, index, config)

        compiler = ReactiveCompiler(
            file_system=MemoryFileSystem({BUTTON_PATH: BUTTON_SOURCE}),
            type_provider_factory=provider_factory,
        )
        with pytest.raises(AnalysisSuperseded):
            compiler.analyze(BUTTON_PATH, BUTTON_SOURCE)
        assert compiler.registry.tag_of("MyButton", BUTTON_PATH) == "my-button"


class TestAssignTag:
    def test_assigns_on_first_request(self):
        compiler, _ = _compiler({"src/Card.tsx": ""})
        assert compiler.assign_tag("InfoCard", "src/Card.tsx") == "info-card"
        assert compiler.assign_tag("InfoCard", "src/Card.tsx") == "info-card"

    def test_explicit_tag_from_registration(self):
        compiler, _ = _compiler({"src/Fancy.tsx": FANCY_SOURCE})
        compiler.analyze("src/Fancy.tsx", FANCY_SOURCE)
        assert compiler.assign_tag("Fancy", "src/Fancy.tsx") == "my-button"


class TestWatchChange:
    def test_updated_script_is_reanalyzed(self):
        compiler, _ = _compiler()
        assert compiler.watch_change(BUTTON_PATH, ChangeEvent.UPDATED) == [BUTTON_PATH]

    def test_event_aliases(self):
        compiler, _ = _compiler()
        assert compiler.watch_change(BUTTON_PATH, "update") == [BUTTON_PATH]

    def test_deleted_script_releases_tags(self):
        compiler, fs = _compiler({BUTTON_PATH: BUTTON_SOURCE})
        compiler.analyze(BUTTON_PATH, BUTTON_SOURCE)
        fs.remove(BUTTON_PATH)
        assert compiler.watch_change(BUTTON_PATH, "deleted") == []
        assert compiler.registry.tag_of("MyButton", BUTTON_PATH) is None
        assert compiler.components(BUTTON_PATH) == []

    def test_created_template_points_at_its_component(self):
        compiler, fs = _compiler({BUTTON_PATH: BARE_BUTTON})
        compiler.analyze(BUTTON_PATH, BARE_BUTTON)
        fs.write(TEMPLATE_PATH, "<p>hi</p>")
        assert compiler.watch_change(TEMPLATE_PATH, "created") == [BUTTON_PATH]
        assert compiler.template_owner(TEMPLATE_PATH) == (BUTTON_PATH, "MyButton")

    def test_template_without_component_affects_nothing(self):
        compiler, _ = _compiler()
        assert compiler.watch_change("src/Nobody.template", "created") == []

    def test_deleted_template_reanalyzes_owner(self):
        files = {BUTTON_PATH: BARE_BUTTON, TEMPLATE_PATH: "<p>hi</p>"}
        compiler, fs = _compiler(files)
        compiler.analyze(BUTTON_PATH, BARE_BUTTON)
        fs.remove(TEMPLATE_PATH)
        assert compiler.watch_change(TEMPLATE_PATH, "deleted") == [BUTTON_PATH]
        assert compiler.template_owner(TEMPLATE_PATH) is None

    def test_static_claim_marks_evicted_file(self):
        files = {BUTTON_PATH: BARE_BUTTON, "src/Fancy.tsx": FANCY_SOURCE}
        compiler, _ = _compiler(files)
        compiler.analyze(BUTTON_PATH, BARE_BUTTON)
        compiler.analyze("src/Fancy.tsx", FANCY_SOURCE)
        affected = compiler.watch_change("src/Fancy.tsx", "updated")
        assert affected == ["src/Fancy.tsx", BUTTON_PATH]
        compiler.analyze(BUTTON_PATH, BARE_BUTTON)
        assert compiler.registry.tag_of("MyButton", BUTTON_PATH) == "my-button-tc2"


LIBRARY_PATH = "node_modules/ui-kit/dist/index.js"

LIBRARY_SOURCE = """\
export class MyButton extends HTMLElement {
  static TAG = "my-button";
}
TypeComposer.defineElement(MyButton.TAG, MyButton);
"""


def _tags(compiler, *paths: str) -> list[str]:
    return [d.tag for path in paths for d in compiler.components(path)]


class TestTagUniqueness:
    def test_static_claim_reassigns_the_evicted_component(self):
        files = {BUTTON_PATH: BARE_BUTTON, "src/Fancy.tsx": FANCY_SOURCE}
        compiler, _ = _compiler(files)
        compiler.analyze(BUTTON_PATH, BARE_BUTTON)
        compiler.analyze("src/Fancy.tsx", FANCY_SOURCE)
        tags = _tags(compiler, BUTTON_PATH, "src/Fancy.tsx")
        assert len(set(tags)) == len(tags)
        assert compiler.registry.tag_of("MyButton", BUTTON_PATH) == "my-button-tc2"
        assert compiler.components(BUTTON_PATH)[0].tag == "my-button-tc2"

    def test_files_missing_from_disk_stay_live(self):
        compiler = ReactiveCompiler()
        compiler.analyze("/virtual/a/MyButton.tsx", BARE_BUTTON)
        compiler.analyze("/virtual/b/MyButton.tsx", BARE_BUTTON)
        tags = _tags(compiler, "/virtual/a/MyButton.tsx", "/virtual/b/MyButton.tsx")
        assert tags == ["my-button", "my-button-tc2"]

    def test_deleted_virtual_file_releases_its_tag(self):
        compiler = ReactiveCompiler()
        compiler.analyze("/virtual/a/MyButton.tsx", BARE_BUTTON)
        compiler.watch_change("/virtual/a/MyButton.tsx", "deleted")
        compiler.analyze("/virtual/b/MyButton.tsx", BARE_BUTTON)
        assert _tags(compiler, "/virtual/b/MyButton.tsx") == ["my-button"]

    def test_concurrent_analyses_get_distinct_tags(self):
        paths = [f"src/part{i}/MyButton.tsx" for i in range(8)]
        compiler, _ = _compiler({path: BARE_BUTTON for path in paths})
        with ThreadPoolExecutor(max_workers=4) as pool:
            outputs = list(pool.map(lambda p: compiler.analyze(p, BARE_BUTTON), paths))
        assert len(outputs) == len(paths)
        tags = _tags(compiler, *paths)
        assert len(tags) == len(paths)
        assert len(set(tags)) == len(paths)


class TestDefinedElements:
    def test_library_tags_are_reserved(self):
        compiler, _ = _compiler({LIBRARY_PATH: LIBRARY_SOURCE, BUTTON_PATH: BARE_BUTTON})
        assert compiler.reserve_defined_elements([LIBRARY_PATH]) == ["my-button"]
        compiler.analyze(BUTTON_PATH, BARE_BUTTON)
        assert _tags(compiler, BUTTON_PATH) == ["my-button-tc2"]

    def test_reservation_reassigns_an_earlier_owner(self):
        compiler, _ = _compiler({LIBRARY_PATH: LIBRARY_SOURCE, BUTTON_PATH: BARE_BUTTON})
        compiler.analyze(BUTTON_PATH, BARE_BUTTON)
        compiler.reserve_defined_elements([LIBRARY_PATH])
        assert _tags(compiler, BUTTON_PATH) == ["my-button-tc2"]
        assert compiler.watch_change(LIBRARY_PATH, "updated") == [LIBRARY_PATH, BUTTON_PATH]

    def test_modules_without_define_element_are_skipped(self):
        source = 'export class MyButton { static TAG = "my-button"; }\n'
        compiler, _ = _compiler({LIBRARY_PATH: source})
        assert compiler.reserve_defined_elements([LIBRARY_PATH]) == []

    def test_unreadable_module_is_skipped(self):
        compiler, _ = _compiler()
        assert compiler.reserve_defined_elements(["node_modules/missing.js"]) == []

    def test_analyzed_file_reserves_its_defined_tags(self):
        compiler, _ = _compiler({LIBRARY_PATH: LIBRARY_SOURCE, BUTTON_PATH: BARE_BUTTON})
        compiler.analyze(LIBRARY_PATH, LIBRARY_SOURCE)
        compiler.analyze(BUTTON_PATH, BARE_BUTTON)
        assert _tags(compiler, BUTTON_PATH) == ["my-button-tc2"]


class TestTemplateModules:
    def test_template_file_compiles_to_a_stub_module(self):
        compiler, _ = _compiler()
        output = compiler.analyze(TEMPLATE_PATH, "<button>go</button>\n")
        assert output == 'export default function () {\n  return "src/MyButton.template";\n}\n'
        assert compiler.components(TEMPLATE_PATH) == []

    def test_undecodable_template_is_not_injected(self, tmp_path, caplog):
        script = tmp_path / "MyButton.tsx"
        script.write_text(BARE_BUTTON, encoding="utf-8")
        (tmp_path / "MyButton.template").write_bytes(b"\xff\xfe<p>hi</p>")
        compiler = ReactiveCompiler()
        with caplog.at_level(logging.ERROR, logger="reactive_compiler.templates"):
            output = compiler.analyze(str(script), BARE_BUTTON)
        assert "template()" not in output
        assert _tags(compiler, str(script)) == ["my-button"]
        assert any("Cannot read template" in r.getMessage() for r in caplog.records)
