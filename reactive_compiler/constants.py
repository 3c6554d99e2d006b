"""Named constants shared by the compiler passes."""

from __future__ import annotations

LANGUAGE_TSX = "tsx"

SCRIPT_EXTENSIONS: tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx")
TYPING_EXTENSION = ".d.ts"
RUNTIME_EXTENSION = ".js"

RUNTIME_NAMESPACE = "TypeComposer"
CREATE_ELEMENT = "createElement"
CREATE_FRAGMENT = "createFragment"
COMPUTED_WRAPPER = "computed"

CAPTURE_KEY_PREFIX = "_c__tc_"
CAPTURE_PUT = "put"
CAPTURE_CACHE = "cache"

TEMPLATE_METHOD = "template"
TEMPLATE_EXTENSION = ".template"
IDENTITY_ATTRIBUTE = "key"
REF_ATTRIBUTE = "ref"
FRAGMENT_TAG = "fragment"

TAG_SUFFIX = "-tc"
TAG_FIRST_SUFFIX_INDEX = 2

REACTIVE_MODULE_PATTERN = r"typecomposer[\\/]+core[\\/]+ref[\\/]"
FRAMEWORK_MODULE = "typecomposer"
REACTIVE_DECLARATION_FILE = "typecomposer/core/ref/index.d.ts"

REACTIVE_EXPORTS: tuple[str, ...] = (
    "ref",
    "computed",
    "refProperty",
    "Ref",
    "Computed",
    "RefList",
    "RefMap",
    "RefSet",
    "RefString",
    "RefNumber",
    "RefBoolean",
    "RefObject",
)

COMPUTED_FUNCTION = "computed"
REF_FUNCTION = "ref"
REF_PROPERTY_FUNCTION = "refProperty"
REGISTER_DECORATOR = "Register"
DEFINE_ELEMENT = "defineElement"
STATIC_TAG_FIELD = "TAG"

# Identifiers that never name a reactive container
NON_REFERENCE_NAMES: frozenset[str] = frozenset(
    {"this", "super", "true", "false", "null", "undefined", "arguments"}
)

MAX_ALIAS_DEPTH = 8
