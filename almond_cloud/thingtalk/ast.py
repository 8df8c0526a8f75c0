"""
ThingTalk structural AST

Covers the parts of ThingTalk that Thingpedia stores and serves:
class definitions (imports, functions, arguments, annotations), datasets
of examples, and ``let`` declarations.

Expression bodies (the right-hand side of ``:=``) are kept as opaque source
fragments and printed back verbatim.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

TIME_UNITS_MS = {
    "ms": 1,
    "s": 1000,
    "min": 60 * 1000,
    "h": 3600 * 1000,
    "day": 86400 * 1000,
    "week": 7 * 86400 * 1000,
}


@dataclass
class Measure:
    """A number with a unit, e.g. ``600000ms`` or ``1h``."""

    value: float
    unit: str

    def to_ms(self) -> Optional[int]:
        if self.unit not in TIME_UNITS_MS:
            return None
        return int(self.value * TIME_UNITS_MS[self.unit])

    def prettyprint(self) -> str:
        value = int(self.value) if float(self.value).is_integer() else self.value
        return f"{value}{self.unit}"


@dataclass
class ArgMap:
    """``makeArgMap(name:Type, ...)`` value used by form configuration mixins."""

    args: Dict[str, str] = field(default_factory=dict)

    def prettyprint(self) -> str:
        inner = ", ".join(f"{name}:{type_}" for name, type_ in self.args.items())
        return f"makeArgMap({inner})"


@dataclass
class RawValue:
    """Annotation or parameter value kept as source text."""

    source: str

    def prettyprint(self) -> str:
        return self.source


def string_escape(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def print_value(value: Any) -> str:
    """Print a literal value in ThingTalk syntax."""
    if isinstance(value, (Measure, ArgMap, RawValue)):
        return value.prettyprint()
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "$?"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return string_escape(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(print_value(v) for v in value) + "]"
    if isinstance(value, dict):
        return "{" + ", ".join(f"{key}={print_value(v)}" for key, v in value.items()) + "}"
    raise TypeError(f"Cannot print value of type {type(value).__name__}")


@dataclass
class Annotations:
    """Natural-language (``#_[...]``) and implementation (``#[...]``) annotations."""

    nl: Dict[str, Any] = field(default_factory=dict)
    impl: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.nl) or bool(self.impl)

    def items(self) -> List[str]:
        out = [f"#_[{key}={print_value(value)}]" for key, value in self.nl.items()]
        out += [f"#[{key}={print_value(value)}]" for key, value in self.impl.items()]
        return out

    def prettyprint(self, separator: str = " ") -> str:
        return separator.join(self.items())


@dataclass
class ArgumentDef:
    direction: str  # "in req", "in opt", "out"
    name: str
    type: str
    annotations: Annotations = field(default_factory=Annotations)

    @property
    def is_input(self) -> bool:
        return self.direction != "out"

    @property
    def required(self) -> bool:
        return self.direction == "in req"

    def prettyprint(self) -> str:
        out = f"{self.direction} {self.name}: {self.type}"
        if self.annotations:
            out += " " + self.annotations.prettyprint()
        return out


@dataclass
class FunctionDef:
    function_type: str  # "query" or "action"
    name: str
    args: List[ArgumentDef] = field(default_factory=list)
    is_list: bool = False
    is_monitorable: bool = False
    extends: List[str] = field(default_factory=list)
    annotations: Annotations = field(default_factory=Annotations)

    def get_arg(self, name: str) -> Optional[ArgumentDef]:
        for arg in self.args:
            if arg.name == name:
                return arg
        return None

    @property
    def canonical(self) -> Optional[str]:
        return self.annotations.nl.get("canonical")

    def prettyprint(self, indent: str = "  ") -> str:
        head = indent
        if self.is_monitorable:
            head += "monitorable "
        if self.is_list:
            head += "list "
        head += f"{self.function_type} {self.name}"
        if self.extends:
            head += " extends " + ", ".join(self.extends)
        head += "("
        args = (",\n" + " " * len(head)).join(arg.prettyprint() for arg in self.args)
        out = head + args + ")"
        for annotation in self.annotations.items():
            out += f"\n{indent}{annotation}"
        return out + ";"


@dataclass
class ImportStmt:
    """``import loader from @org.thingpedia.v2();``"""

    facets: List[str]
    module: str
    in_params: Dict[str, Any] = field(default_factory=dict)

    def prettyprint(self, indent: str = "  ") -> str:
        params = ", ".join(f"{name}={print_value(value)}" for name, value in self.in_params.items())
        return f"{indent}import {', '.join(self.facets)} from @{self.module}({params});"


@dataclass
class EntityDef:
    name: str
    annotations: Annotations = field(default_factory=Annotations)

    def prettyprint(self, indent: str = "  ") -> str:
        out = f"{indent}entity {self.name}"
        if self.annotations:
            out += " " + self.annotations.prettyprint()
        return out + ";"


@dataclass
class ClassDef:
    kind: str
    extends: List[str] = field(default_factory=list)
    imports: List[ImportStmt] = field(default_factory=list)
    entities: List[EntityDef] = field(default_factory=list)
    queries: Dict[str, FunctionDef] = field(default_factory=dict)
    actions: Dict[str, FunctionDef] = field(default_factory=dict)
    annotations: Annotations = field(default_factory=Annotations)
    is_abstract: bool = False

    def _get_mixin(self, facet: str) -> Optional[ImportStmt]:
        for stmt in self.imports:
            if facet in stmt.facets:
                return stmt
        return None

    @property
    def loader(self) -> Optional[ImportStmt]:
        return self._get_mixin("loader")

    @property
    def config(self) -> Optional[ImportStmt]:
        return self._get_mixin("config")

    def get_function(self, function_type: str, name: str) -> Optional[FunctionDef]:
        functions = self.queries if function_type == "query" else self.actions
        return functions.get(name)

    def prettyprint(self) -> str:
        head = "abstract class" if self.is_abstract else "class"
        out = f"{head} @{self.kind}"
        if self.extends:
            out += " extends " + ", ".join(f"@{kind}" for kind in self.extends)
        for annotation in self.annotations.items():
            out += f"\n{annotation}"
        out += " {\n"

        sections = []
        if self.imports:
            sections.append("\n".join(stmt.prettyprint() for stmt in self.imports) + "\n")
        if self.entities:
            sections.append("\n".join(entity.prettyprint() for entity in self.entities) + "\n")
        for function in list(self.queries.values()) + list(self.actions.values()):
            sections.append(function.prettyprint() + "\n")
        out += "\n".join(sections)
        return out + "}"


def _print_params(args: Dict[str, str]) -> str:
    return ", ".join(f"{name} :{type_}" for name, type_ in args.items())


@dataclass
class Example:
    """One entry of a dataset: ``query (p_x :String) := <value>``."""

    type: str  # stream, query, action, program
    args: Dict[str, str] = field(default_factory=dict)
    value: str = ""
    utterances: List[str] = field(default_factory=list)
    preprocessed: List[str] = field(default_factory=list)
    annotations: Annotations = field(default_factory=Annotations)
    id: int = -1

    def head(self) -> str:
        if self.args:
            return f"{self.type} ({_print_params(self.args)}) := {self.value}"
        return f"{self.type} := {self.value}"

    def prettyprint(self, indent: str = "    ") -> str:
        lines = [indent + self.head()]
        if self.utterances:
            lines.append(f"{indent}#_[utterances={print_value(self.utterances)}]")
        if self.preprocessed:
            lines.append(f"{indent}#_[preprocessed={print_value(self.preprocessed)}]")
        if self.id >= 0:
            lines.append(f"{indent}#[id={self.id}]")
        if self.annotations:
            lines.append(indent + self.annotations.prettyprint())
        return "\n".join(lines) + ";"


@dataclass
class Dataset:
    name: str
    language: str = "en"
    examples: List[Example] = field(default_factory=list)

    def prettyprint(self) -> str:
        out = f"dataset @{self.name} language {string_escape(self.language)} {{\n"
        for example in self.examples:
            out += example.prettyprint() + "\n"
        return out + "}"


@dataclass
class Declaration:
    """``let query x(p_x :String) := <value>;``"""

    name: str
    type: str
    args: Dict[str, str] = field(default_factory=dict)
    value: str = ""
    annotations: Annotations = field(default_factory=Annotations)

    def prettyprint(self) -> str:
        out = f"let {self.type} {self.name}"
        if self.args:
            out += f"({_print_params(self.args)})"
        out += f" := {self.value}"
        if self.annotations:
            out += " " + self.annotations.prettyprint()
        return out + ";"


@dataclass
class Statement:
    """Any other top-level statement, kept as source."""

    source: str

    def prettyprint(self) -> str:
        return self.source + ";"


@dataclass
class Program:
    classes: List[ClassDef] = field(default_factory=list)
    datasets: List[Dataset] = field(default_factory=list)
    declarations: List[Declaration] = field(default_factory=list)
    statements: List[Statement] = field(default_factory=list)

    def prettyprint(self, short: bool = False) -> str:
        parts = [c.prettyprint() for c in self.classes]
        parts += [d.prettyprint() for d in self.datasets]
        parts += [d.prettyprint() for d in self.declarations]
        parts += [s.prettyprint() for s in self.statements]
        if short:
            return " ".join(parts)
        return "\n".join(parts) + "\n"
