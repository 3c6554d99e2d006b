"""Compiler configuration (pure data, no business logic)."""

from __future__ import annotations

from dataclasses import dataclass, field

from . import constants


def _default_reactive_exports() -> dict[str, tuple[str, ...]]:
    return {constants.FRAMEWORK_MODULE: constants.REACTIVE_EXPORTS}


@dataclass(frozen=True)
class CompilerConfig:
    """Groups the knobs of one compiler instance."""

    runtime_namespace: str = constants.RUNTIME_NAMESPACE
    template_method: str = constants.TEMPLATE_METHOD
    template_extension: str = constants.TEMPLATE_EXTENSION
    identity_attribute: str = constants.IDENTITY_ATTRIBUTE
    capture_key_prefix: str = constants.CAPTURE_KEY_PREFIX
    tag_suffix: str = constants.TAG_SUFFIX
    reactive_module_pattern: str = constants.REACTIVE_MODULE_PATTERN
    component_modules: tuple[str, ...] = (constants.FRAMEWORK_MODULE,)
    # package specifier -> export names declared in the reactive-primitives module
    reactive_exports: dict[str, tuple[str, ...]] = field(
        default_factory=_default_reactive_exports
    )
    computed_function: str = constants.COMPUTED_FUNCTION
    ref_function: str = constants.REF_FUNCTION
    ref_property_function: str = constants.REF_PROPERTY_FUNCTION
    register_decorator: str = constants.REGISTER_DECORATOR
    bind_event_handlers: bool = True
    language: str = constants.LANGUAGE_TSX

    @property
    def computed_wrapper(self) -> str:
        return f"{self.runtime_namespace}.{constants.COMPUTED_WRAPPER}"

    @property
    def create_element(self) -> str:
        return f"{self.runtime_namespace}.{constants.CREATE_ELEMENT}"

    @property
    def create_fragment(self) -> str:
        return f"{self.runtime_namespace}.{constants.CREATE_FRAGMENT}"

    @property
    def define_element(self) -> str:
        return f"{self.runtime_namespace}.{constants.DEFINE_ELEMENT}"
