"""Structural ThingTalk support: AST, parser and manifest conversion."""

from almond_cloud.thingtalk.ast import (
    Annotations,
    ArgMap,
    ArgumentDef,
    ClassDef,
    Dataset,
    Declaration,
    Example,
    FunctionDef,
    ImportStmt,
    Measure,
    Program,
    RawValue,
    string_escape,
)
from almond_cloud.thingtalk.grammar import ThingTalkSyntaxError, parse
from almond_cloud.thingtalk.manifest import from_manifest, to_manifest

__all__ = [
    "Annotations",
    "ArgMap",
    "ArgumentDef",
    "ClassDef",
    "Dataset",
    "Declaration",
    "Example",
    "FunctionDef",
    "ImportStmt",
    "Measure",
    "Program",
    "RawValue",
    "ThingTalkSyntaxError",
    "from_manifest",
    "parse",
    "string_escape",
    "to_manifest",
]
