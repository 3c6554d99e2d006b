"""Tests for the composable API functions in reactive_compiler.api."""

from __future__ import annotations

from reactive_compiler import api
from reactive_compiler.filesystem import MemoryFileSystem
from reactive_compiler.models import ComponentDeclaration

CARD_SOURCE = """\
import { Component } from "typecomposer";

export class Card extends Component {}
"""

FANCY_SOURCE = """\
import { Card } from "./Card";

export class FancyCard extends Card {}
"""

STORE_SOURCE = """\
import { ref, computed } from "typecomposer";

const a = ref(1);
export const b = computed(() => a.value + 1);
"""


def _compiler(files: dict[str, str]):
    return api.create_compiler(file_system=MemoryFileSystem(files))


class TestAnalyze:
    def test_returns_rewritten_text(self):
        compiler = _compiler({})
        output = api.analyze("src/store.ts", STORE_SOURCE, compiler)
        assert "computed((_c__tc_) => _c__tc_.put(a.value) + 1)" in output

    def test_fresh_compiler_by_default(self):
        assert api.analyze("src/plain.ts", "let x = 1;\n") == "let x = 1;\n"


class TestCompileFiles:
    def test_compile_file_reads_from_the_file_system(self):
        compiler = _compiler({"src/store.ts": STORE_SOURCE})
        assert ".put(a.value)" in api.compile_file("src/store.ts", compiler)

    def test_component_bases_across_files(self):
        files = {"src/FancyCard.tsx": FANCY_SOURCE, "src/Card.tsx": CARD_SOURCE}
        compiler = _compiler(files)
        outputs = api.compile_files(list(files), compiler)
        assert set(outputs) == set(files)
        fancy = api.components("src/FancyCard.tsx", compiler)
        assert [d.name for d in fancy] == ["FancyCard"]
        assert isinstance(fancy[0], ComponentDeclaration)
        assert fancy[0].tag == "fancy-card"


class TestTags:
    def test_tag_for_derives_without_registering(self):
        assert api.tag_for("MyButton") == "my-button"

    def test_assign_tag(self):
        compiler = _compiler({"src/Card.tsx": CARD_SOURCE})
        api.analyze("src/Card.tsx", CARD_SOURCE, compiler)
        assert api.assign_tag("Card", "src/Card.tsx", compiler) == "card-tc2"


class TestWatchChange:
    def test_forwards_to_the_compiler(self):
        compiler = _compiler({})
        assert api.watch_change("src/Card.tsx", "created", compiler) == ["src/Card.tsx"]


class TestReserveDefinedElements:
    def test_reserved_library_tag_is_skipped(self):
        library = (
            'export class Card extends HTMLElement { static TAG = "card-tc2"; }\n'
            "TypeComposer.defineElement(Card.TAG, Card);\n"
        )
        compiler = _compiler({"lib/index.js": library, "src/Card.tsx": CARD_SOURCE})
        assert api.reserve_defined_elements(["lib/index.js"], compiler) == ["card-tc2"]
        api.analyze("src/Card.tsx", CARD_SOURCE, compiler)
        assert api.components("src/Card.tsx", compiler)[0].tag == "card-tc3"
