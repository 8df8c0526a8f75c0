"""
ThingTalk structural parser

Recursive-descent parser for the declaration structure of ThingTalk:
classes, datasets, ``let`` declarations. Expression bodies are captured as
balanced source spans and never interpreted.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from almond_cloud.thingtalk.ast import (
    Annotations,
    ArgMap,
    ArgumentDef,
    ClassDef,
    Dataset,
    Declaration,
    EntityDef,
    Example,
    FunctionDef,
    ImportStmt,
    Measure,
    Program,
    RawValue,
    Statement,
)

EXAMPLE_TYPES = ("stream", "query", "action", "program")
DECLARATION_TYPES = ("stream", "query", "action", "program", "table", "procedure")

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+|//[^\n]*|/\*.*?\*/)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<classref>@[A-Za-z_][A-Za-z0-9_.\-]*)
  | (?P<number>[0-9]+(?:\.[0-9]+)?(?:e[+-]?[0-9]+)?(?P<unit>[A-Za-z]+)?)
  | (?P<ident>\$?[A-Za-z_][A-Za-z0-9_]*)
  | (?P<punct>\#_\[|\#\[|:=|=>|->|==|>=|<=|!=|=~|~=|&&|\|\||.)
    """,
    re.VERBOSE | re.DOTALL,
)

_OPEN = {"(": ")", "[": "]", "{": "}", "#_[": "]", "#[": "]"}
_CLOSE = {")", "]", "}"}


class ThingTalkSyntaxError(ValueError):
    """Raised when ThingTalk source cannot be parsed."""

    def __init__(self, message: str, offset: int = -1):
        if offset >= 0:
            message = f"{message} (at offset {offset})"
        super().__init__(message)
        self.offset = offset


@dataclass
class Token:
    kind: str  # string, classref, number, ident, punct, eof
    value: str
    start: int
    end: int
    unit: Optional[str] = None


def tokenize(source: str) -> List[Token]:
    tokens = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise ThingTalkSyntaxError(f"Unexpected character {source[pos]!r}", pos)
        kind = match.lastgroup
        if kind == "unit":
            kind = "number"
        if kind != "ws":
            tokens.append(Token(kind, match.group(0), match.start(), match.end(), match.group("unit")))
        pos = match.end()
    tokens.append(Token("eof", "", len(source), len(source)))
    return tokens


def _unescape(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r"\\(.)", lambda m: {"n": "\n", "t": "\t"}.get(m.group(1), m.group(1)), body)


class Parser:
    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.pos = 0

    # ---- token helpers ----

    @property
    def peek(self) -> Token:
        return self.tokens[self.pos]

    def _next(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != "eof":
            self.pos += 1
        return token

    def _at(self, value: str) -> bool:
        token = self.peek
        return token.kind in ("punct", "ident") and token.value == value

    def _accept(self, value: str) -> bool:
        if self._at(value):
            self._next()
            return True
        return False

    def _expect(self, value: str) -> Token:
        token = self._next()
        if token.value != value or token.kind not in ("punct", "ident"):
            raise ThingTalkSyntaxError(f"Expected {value!r}, found {token.value or 'end of input'!r}", token.start)
        return token

    def _expect_kind(self, kind: str) -> Token:
        token = self._next()
        if token.kind != kind:
            raise ThingTalkSyntaxError(f"Expected {kind}, found {token.value or 'end of input'!r}", token.start)
        return token

    def _skip_balanced(self, stop: Tuple[str, ...]) -> Tuple[int, int]:
        """Skip tokens until one of ``stop`` at depth 0; return the source span."""
        start = self.peek.start
        end = start
        stack = []
        while True:
            token = self.peek
            if token.kind == "eof":
                if stack:
                    raise ThingTalkSyntaxError("Unbalanced brackets", token.start)
                break
            if token.kind == "punct":
                if not stack and (token.value in stop or token.value in _CLOSE):
                    break
                if token.value in _OPEN:
                    stack.append(_OPEN[token.value])
                elif token.value in _CLOSE:
                    if stack.pop() != token.value:
                        raise ThingTalkSyntaxError(f"Mismatched {token.value!r}", token.start)
            end = token.end
            self._next()
        return start, end

    def _span(self, stop: Tuple[str, ...]) -> str:
        start, end = self._skip_balanced(stop)
        return self.source[start:end]

    # ---- program ----

    def parse_program(self) -> Program:
        program = Program()
        while self.peek.kind != "eof":
            if self._accept(";"):
                continue
            if self._at("class") or self._at("abstract"):
                program.classes.append(self.parse_class())
            elif self._at("dataset"):
                program.datasets.append(self.parse_dataset())
            elif self._at("let"):
                program.declarations.append(self.parse_declaration())
            else:
                source = self._span((";",))
                if not source:
                    raise ThingTalkSyntaxError(f"Unexpected {self.peek.value!r}", self.peek.start)
                program.statements.append(Statement(source))
        return program

    # ---- annotations and values ----

    def parse_annotations(self) -> Annotations:
        annotations = Annotations()
        while self._at("#_[") or self._at("#["):
            target = annotations.nl if self._next().value == "#_[" else annotations.impl
            name = self._expect_kind("ident").value
            self._expect("=")
            target[name] = self.parse_value(("]",))
            self._expect("]")
        return annotations

    def parse_value(self, stop: Tuple[str, ...]) -> Any:
        start_pos = self.pos
        try:
            value = self._parse_literal()
            if self.peek.value in stop or self.peek.value in (",",) + tuple(_CLOSE):
                return value
        except ThingTalkSyntaxError:
            pass
        self.pos = start_pos
        return RawValue(self._span(stop + (",",)))

    def _parse_literal(self) -> Any:
        token = self._next()
        if token.kind == "string":
            return _unescape(token.value)
        if token.kind == "number":
            if token.unit:
                number = token.value[: -len(token.unit)]
                return Measure(float(number) if "." in number else int(number), token.unit)
            return float(token.value) if "." in token.value or "e" in token.value else int(token.value)
        if token.kind == "punct" and token.value == "-":
            value = self._parse_literal()
            if isinstance(value, Measure):
                return Measure(-value.value, value.unit)
            if isinstance(value, (int, float)):
                return -value
            raise ThingTalkSyntaxError("Invalid negative literal", token.start)
        if token.kind == "ident":
            if token.value in ("true", "false"):
                return token.value == "true"
            if token.value == "makeArgMap":
                return self._parse_arg_map()
        if token.kind == "punct" and token.value == "$" and self._accept("?"):
            return None
        if token.kind == "punct" and token.value == "[":
            values = []
            while not self._at("]"):
                values.append(self._parse_literal())
                if not self._accept(","):
                    break
            self._expect("]")
            return values
        if token.kind == "punct" and token.value == "{":
            values = {}
            while not self._at("}"):
                key = self._expect_kind("ident").value
                if not self._accept("="):
                    self._expect(":")
                values[key] = self._parse_literal()
                if not self._accept(","):
                    break
            self._expect("}")
            return values
        raise ThingTalkSyntaxError(f"Invalid literal {token.value!r}", token.start)

    def _parse_arg_map(self) -> ArgMap:
        self._expect("(")
        args = {}
        while not self._at(")"):
            name = self._expect_kind("ident").value
            self._expect(":")
            args[name] = self.parse_type()
            if not self._accept(","):
                break
        self._expect(")")
        return ArgMap(args)

    def parse_type(self) -> str:
        token = self._expect_kind("ident")
        if not self._at("("):
            return token.value
        self._next()
        start, end = self._skip_balanced(())
        self._expect(")")
        inner = re.sub(r"\s+", "", self.source[start:end])
        return f"{token.value}({inner})"

    def parse_params(self) -> Dict[str, str]:
        """``(p_x :String, p_y :Number)``"""
        self._expect("(")
        params = {}
        while not self._at(")"):
            name = self._expect_kind("ident").value
            self._expect(":")
            params[name] = self.parse_type()
            if not self._accept(","):
                break
        self._expect(")")
        return params

    # ---- classes ----

    def parse_class(self) -> ClassDef:
        is_abstract = self._accept("abstract")
        self._expect("class")
        class_def = ClassDef(kind=self._expect_kind("classref").value[1:], is_abstract=is_abstract)
        if self._accept("extends"):
            class_def.extends.append(self._expect_kind("classref").value[1:])
            while self._accept(","):
                class_def.extends.append(self._expect_kind("classref").value[1:])
        class_def.annotations = self.parse_annotations()
        self._expect("{")
        while not self._accept("}"):
            if self.peek.kind == "eof":
                raise ThingTalkSyntaxError(f"Unterminated class @{class_def.kind}", self.peek.start)
            if self._accept(";"):
                continue
            if self._at("import"):
                class_def.imports.append(self._parse_import())
            elif self._at("entity"):
                self._next()
                entity = EntityDef(self._expect_kind("ident").value)
                entity.annotations = self.parse_annotations()
                self._expect(";")
                class_def.entities.append(entity)
            else:
                function = self._parse_function()
                if function.function_type == "query":
                    class_def.queries[function.name] = function
                else:
                    class_def.actions[function.name] = function
        trailing = self.parse_annotations()
        class_def.annotations.nl.update(trailing.nl)
        class_def.annotations.impl.update(trailing.impl)
        return class_def

    def _parse_import(self) -> ImportStmt:
        self._expect("import")
        facets = [self._expect_kind("ident").value]
        while self._accept(","):
            facets.append(self._expect_kind("ident").value)
        self._expect("from")
        module = self._expect_kind("classref").value[1:]
        in_params = {}
        self._expect("(")
        while not self._at(")"):
            name = self._expect_kind("ident").value
            self._expect("=")
            in_params[name] = self.parse_value((")",))
            if not self._accept(","):
                break
        self._expect(")")
        self._expect(";")
        return ImportStmt(facets, module, in_params)

    def _parse_function(self) -> FunctionDef:
        is_monitorable = self._accept("monitorable")
        is_list = self._accept("list")
        token = self._next()
        if token.value not in ("query", "action"):
            raise ThingTalkSyntaxError(f"Expected query or action, found {token.value!r}", token.start)
        function = FunctionDef(
            function_type=token.value,
            name=self._expect_kind("ident").value,
            is_list=is_list,
            is_monitorable=is_monitorable,
        )
        if self._accept("extends"):
            function.extends.append(self._expect_kind("ident").value)
            while self._accept(","):
                function.extends.append(self._expect_kind("ident").value)
        self._expect("(")
        while not self._at(")"):
            function.args.append(self._parse_argument())
            if not self._accept(","):
                break
        self._expect(")")
        function.annotations = self.parse_annotations()
        self._expect(";")
        return function

    def _parse_argument(self) -> ArgumentDef:
        if self._accept("out"):
            direction = "out"
        else:
            self._expect("in")
            if self._accept("req"):
                direction = "in req"
            else:
                self._expect("opt")
                direction = "in opt"
        name = self._expect_kind("ident").value
        self._expect(":")
        arg_type = self.parse_type()
        return ArgumentDef(direction, name, arg_type, self.parse_annotations())

    # ---- datasets and declarations ----

    def parse_dataset(self) -> Dataset:
        self._expect("dataset")
        dataset = Dataset(name=self._expect_kind("classref").value[1:])
        if self._accept("language"):
            dataset.language = _unescape(self._expect_kind("string").value)
        self.parse_annotations()
        self._expect("{")
        while not self._accept("}"):
            if self.peek.kind == "eof":
                raise ThingTalkSyntaxError(f"Unterminated dataset @{dataset.name}", self.peek.start)
            if self._accept(";"):
                continue
            dataset.examples.append(self._parse_example())
        return dataset

    def _parse_example(self) -> Example:
        token = self._next()
        if token.value not in EXAMPLE_TYPES:
            raise ThingTalkSyntaxError(f"Invalid example type {token.value!r}", token.start)
        example = Example(type=token.value)
        if self._at("("):
            example.args = self.parse_params()
        self._expect(":=")
        example.value = self._span((";", "#_[", "#["))
        if not example.value:
            raise ThingTalkSyntaxError("Missing example body", self.peek.start)
        annotations = self.parse_annotations()
        example.utterances = list(annotations.nl.pop("utterances", []))
        example.preprocessed = list(annotations.nl.pop("preprocessed", []))
        example_id = annotations.impl.pop("id", -1)
        example.id = example_id if isinstance(example_id, int) else -1
        example.annotations = annotations
        if not self._at("}"):
            self._expect(";")
        return example

    def parse_declaration(self) -> Declaration:
        self._expect("let")
        token = self._next()
        if token.value not in DECLARATION_TYPES:
            raise ThingTalkSyntaxError(f"Invalid declaration type {token.value!r}", token.start)
        declaration = Declaration(name=self._expect_kind("ident").value, type=token.value)
        if self._at("("):
            declaration.args = self.parse_params()
        self._expect(":=")
        # legacy lambda form: let table x := \(p_x :String) -> <value>;
        if self._accept("\\"):
            declaration.args = self.parse_params()
            self._expect("->")
        declaration.value = self._span((";", "#_[", "#["))
        declaration.annotations = self.parse_annotations()
        if self.peek.kind != "eof":
            self._expect(";")
        return declaration


def parse(source: str) -> Program:
    """Parse ThingTalk source into a :class:`Program`."""
    return Parser(source).parse_program()
