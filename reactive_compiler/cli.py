"""Command-line entry point: ``reactive-compiler compile|tag|change``."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from . import api
from .config import CompilerConfig
from .models import ChangeEvent


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reactive-compiler",
        description="Reactive template compiler for TSX component files",
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Log classification decisions (DEBUG)")
    sub = parser.add_subparsers(dest="command", required=True)

    compile_cmd = sub.add_parser("compile", help="Rewrite component files")
    compile_cmd.add_argument("files", nargs="+", help="Script files to compile")
    compile_cmd.add_argument("--write", "-w", action="store_true",
                             help="Overwrite the files instead of printing them")
    compile_cmd.add_argument("--namespace", default=None,
                             help="Runtime namespace (default: TypeComposer)")
    compile_cmd.add_argument("--tags", action="store_true",
                             help="Print the tag registry as JSON after compiling")
    compile_cmd.add_argument("--no-bind", action="store_true",
                             help="Do not bind this.method event handlers")

    tag_cmd = sub.add_parser("tag", help="Derive the tag of a class name")
    tag_cmd.add_argument("names", nargs="+", help="Component class names")

    watch_cmd = sub.add_parser("change", help="Report files affected by a change")
    watch_cmd.add_argument("event", choices=[e.value for e in ChangeEvent])
    watch_cmd.add_argument("path", help="Changed file")
    watch_cmd.add_argument("files", nargs="*", help="Project script files to load first")
    return parser


def _config(args) -> CompilerConfig:
    options = {}
    if getattr(args, "namespace", None):
        options["runtime_namespace"] = args.namespace
    if getattr(args, "no_bind", False):
        options["bind_event_handlers"] = False
    return CompilerConfig(**options)


def _compile(args) -> int:
    compiler = api.create_compiler(_config(args))
    outputs = api.compile_files(args.files, compiler)
    for path, text in outputs.items():
        if args.write:
            with open(path, "w", encoding="utf-8") as f:
                f.write(text)
            print(f"wrote {path}")
        else:
            print(f"═══ {path} ═══")
            print(text)
    if args.tags:
        records = [r.model_dump(mode="json") for r in compiler.registry.records()]
        print(json.dumps(records, indent=2))
    compiler.close()
    return 0


def _tag(args) -> int:
    for name in args.names:
        print(f"{name}\t{api.tag_for(name)}")
    return 0


def _change(args) -> int:
    compiler = api.create_compiler()
    if args.files:
        api.compile_files(args.files, compiler)
    for path in api.watch_change(args.path, args.event, compiler):
        print(path)
    return 0


_COMMANDS = {"compile": _compile, "tag": _tag, "change": _change}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return _COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
