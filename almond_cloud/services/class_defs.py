"""
Schema rows -> ThingTalk class definitions

Schema rows are the ``{kind, kind_type, queries, actions}`` dictionaries
produced by ``almond_cloud.db.device_schemas``.
"""

from typing import Any, Dict, List, Optional

from almond_cloud.thingtalk.ast import Annotations, ArgumentDef, ClassDef, FunctionDef, Program

_NL_KEYS = ("canonical", "confirmation", "confirmation_remote", "formatted")


def _at(values: List[Any], index: int, default=None):
    return values[index] if values and index < len(values) else default


def _function_from_schema(function_type: str, name: str, entry: Dict[str, Any], with_metadata: bool) -> FunctionDef:
    function = FunctionDef(
        function_type=function_type,
        name=name,
        is_list=bool(entry.get("is_list", False)),
        is_monitorable=bool(entry.get("is_monitorable", False)) if function_type == "query" else False,
    )

    for i, arg_name in enumerate(entry.get("args", [])):
        if _at(entry.get("is_input"), i, False):
            direction = "in req" if _at(entry.get("required"), i, False) else "in opt"
        else:
            direction = "out"

        annotations = Annotations()
        if with_metadata:
            canonical = _at(entry.get("argcanonicals"), i)
            if canonical:
                annotations.nl["canonical"] = canonical
            question = _at(entry.get("questions"), i)
            if question:
                annotations.nl["prompt"] = question
        function.args.append(ArgumentDef(direction, arg_name, _at(entry.get("types"), i, "String"), annotations))

    if with_metadata:
        for key in _NL_KEYS:
            if entry.get(key):
                function.annotations.nl[key] = entry[key]
        if entry.get("doc"):
            function.annotations.impl["doc"] = entry["doc"]
        if function_type == "action" and entry.get("confirm") is False:
            function.annotations.impl["confirm"] = False
    return function


def schema_to_class_def(row: Dict[str, Any], with_metadata: bool) -> ClassDef:
    class_def = ClassDef(kind=row["kind"], is_abstract=row.get("kind_type", "primary") != "primary")
    queries = dict(row.get("triggers") or {})
    queries.update(row.get("queries") or {})
    for name, entry in queries.items():
        class_def.queries[name] = _function_from_schema("query", name, entry, with_metadata)
    for name, entry in (row.get("actions") or {}).items():
        class_def.actions[name] = _function_from_schema("action", name, entry, with_metadata)
    return class_def


def schema_list_to_class_defs(rows: List[Dict[str, Any]], with_metadata: bool) -> Program:
    return Program(classes=[schema_to_class_def(row, with_metadata) for row in rows])


def merge_class_def_and_schema(class_def: ClassDef, schema: Optional[Dict[str, Any]]) -> ClassDef:
    """Overlay localized metadata from a schema row onto a class definition.

    Only natural-language annotations change; types and implementation
    annotations of ``class_def`` are kept.
    """
    if not schema:
        return class_def

    for function_type, functions in (("query", schema.get("queries") or {}), ("action", schema.get("actions") or {})):
        for name, entry in functions.items():
            function = class_def.get_function(function_type, name)
            if function is None:
                continue
            for key in _NL_KEYS:
                if entry.get(key):
                    function.annotations.nl[key] = entry[key]

            for i, arg_name in enumerate(entry.get("args", [])):
                arg = function.get_arg(arg_name)
                if arg is None:
                    continue
                canonical = _at(entry.get("argcanonicals"), i)
                if canonical:
                    arg.annotations.nl["canonical"] = canonical
                question = _at(entry.get("questions"), i)
                if question:
                    arg.annotations.nl["prompt"] = question
    return class_def
