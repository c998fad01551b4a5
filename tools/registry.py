# tools/registry.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# The tool registry is the assistant's "menu" of things the model may ask
# for. Each entry pairs:
#
#   1. a ToolDeclaration — name, description and parameter schema, which
#      is advertised to the model so it knows the tool exists
#   2. a handler — the Python function that actually runs the tool
#
# Declarations and handlers are always registered together, so the set of
# declared names and the set of handler names can never drift apart.
# ============================================================================

from dataclasses import dataclass
from typing import Callable

from agents.errors import DuplicateToolError, ToolRegistrationError, UnknownToolError


# Type tags used in declarations, mapped to their JSON-schema spelling.
TYPE_TAGS = {
    "STRING": "string",
    "NUMBER": "number",
    "INTEGER": "integer",
    "BOOLEAN": "boolean",
}


# ── DECLARATIONS ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class ToolParameter:
    name: str
    type_tag: str
    required: bool = True
    description: str = ""

    def __post_init__(self):
        if self.type_tag not in TYPE_TAGS:
            raise ToolRegistrationError(
                f"Parameter {self.name!r} has unsupported type {self.type_tag!r}"
            )


@dataclass(frozen=True)
class ToolDeclaration:
    """
    Everything the model needs to know about one tool.

    "parameters" is an ordered tuple, so the schema we advertise lists the
    fields in the order they were declared.
    """
    name: str
    description: str
    parameters: tuple = ()

    def required_names(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    def to_json_schema(self) -> dict:
        """
        Render the parameters as a JSON-schema object — the shape both
        OpenAI-style and Anthropic-style tool definitions expect.
        """
        properties = {}
        for param in self.parameters:
            prop = {"type": TYPE_TAGS[param.type_tag]}
            if param.description:
                prop["description"] = param.description
            properties[param.name] = prop

        return {
            "type": "object",
            "properties": properties,
            "required": self.required_names(),
        }


ToolHandler = Callable[[dict], dict]


# ── THE REGISTRY ───────────────────────────────────────────────────────

class ToolRegistry:
    """Maps tool names to (declaration, handler) pairs, in registration order."""

    def __init__(self):
        self._declarations: dict[str, ToolDeclaration] = {}
        self._handlers: dict[str, ToolHandler] = {}
        self._frozen = False

    def register(self, declaration: ToolDeclaration, handler: ToolHandler) -> None:
        if self._frozen:
            raise ToolRegistrationError(
                f"Cannot register {declaration.name!r}: the tool set is already in use"
            )
        if not callable(handler):
            raise ToolRegistrationError(f"Handler for {declaration.name!r} is not callable")
        if declaration.name in self._declarations:
            raise DuplicateToolError(declaration.name)

        self._declarations[declaration.name] = declaration
        self._handlers[declaration.name] = handler

    def register_all(self, declarations, handlers: dict) -> None:
        """
        Register a batch of declarations against a {name: handler} mapping.

        Every declaration needs a handler and every handler needs a
        declaration. If the two name sets differ, nothing is registered.
        """
        declared = [d.name for d in declarations]
        missing_handlers = set(declared) - set(handlers)
        missing_declarations = set(handlers) - set(declared)
        if missing_handlers or missing_declarations:
            raise ToolRegistrationError(
                f"Declarations without handlers: {sorted(missing_handlers)}; "
                f"handlers without declarations: {sorted(missing_declarations)}"
            )

        duplicates = [name for name in declared if name in self._declarations]
        if duplicates or len(set(declared)) != len(declared):
            raise DuplicateToolError(duplicates[0] if duplicates else _first_repeat(declared))

        for declaration in declarations:
            self.register(declaration, handlers[declaration.name])

    def lookup(self, name: str) -> ToolHandler:
        try:
            return self._handlers[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def declaration(self, name: str) -> ToolDeclaration:
        try:
            return self._declarations[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def declarations(self) -> tuple:
        return tuple(self._declarations.values())

    def names(self) -> list[str]:
        return list(self._declarations)

    def freeze(self) -> None:
        """Lock the tool set. Called once a session has advertised it to the model."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, name) -> bool:
        return name in self._declarations

    def __len__(self) -> int:
        return len(self._declarations)


def _first_repeat(names: list[str]) -> str:
    seen = set()
    for name in names:
        if name in seen:
            return name
        seen.add(name)
    return ""
