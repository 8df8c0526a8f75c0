"""
Manifest <-> ClassDef conversion

A manifest is the JSON serialization of a device class used by older
Thingpedia uploads. Both forms carry the same information; the JSON form
is still accepted on input and served to ``application/json`` clients.
"""

from typing import Any, Dict, Optional

from almond_cloud.thingtalk.ast import (
    Annotations,
    ArgMap,
    ArgumentDef,
    ClassDef,
    FunctionDef,
    ImportStmt,
    Measure,
    Program,
)


# HTML form field type <-> ThingTalk type for form configuration parameters
FORM_FIELD_TYPES = {
    "text": "String",
    "password": "Password",
    "number": "Number",
    "checkbox": "Boolean",
    "email": "Entity(tt:email_address)",
}
_FORM_TT_TO_FIELD = {v: k for k, v in FORM_FIELD_TYPES.items()}

_FUNCTION_NL_KEYS = ("canonical", "confirmation", "confirmation_remote", "formatted")


def form_field_type(tt_type: str) -> str:
    return _FORM_TT_TO_FIELD.get(tt_type, "text")


def _config_from_manifest(manifest: Dict[str, Any]) -> ImportStmt:
    auth = dict(manifest.get("auth") or {})
    auth_type = auth.pop("type", "none")
    params = manifest.get("params") or {}

    if auth_type == "oauth2":
        return ImportStmt(["config"], "org.thingpedia.config.oauth2", auth)
    if auth_type == "custom_oauth":
        return ImportStmt(["config"], "org.thingpedia.config.custom_oauth")
    if auth_type == "discovery":
        discovery_type = auth.pop("discoveryType", "bluetooth")
        return ImportStmt(["config"], f"org.thingpedia.config.discovery.{discovery_type}", auth)
    if auth_type == "interactive":
        return ImportStmt(["config"], "org.thingpedia.config.interactive")
    if auth_type == "builtin":
        return ImportStmt(["config"], "org.thingpedia.config.builtin")

    arg_map = ArgMap({
        name: FORM_FIELD_TYPES.get(field[1] if isinstance(field, (list, tuple)) and len(field) > 1 else "text", "String")
        for name, field in params.items()
    })
    if auth_type == "basic":
        in_params = {"extra_params": arg_map} if arg_map.args else {}
        return ImportStmt(["config"], "org.thingpedia.config.basic_auth", in_params)
    if arg_map.args:
        return ImportStmt(["config"], "org.thingpedia.config.form", {"params": arg_map})
    return ImportStmt(["config"], "org.thingpedia.config.none")


def _function_from_manifest(function_type: str, name: str, body: Dict[str, Any]) -> FunctionDef:
    function = FunctionDef(function_type=function_type, name=name, is_list=bool(body.get("is_list", False)))

    poll_interval = body.get("poll_interval")
    if function_type == "query":
        if poll_interval is not None:
            function.is_monitorable = poll_interval >= 0
        else:
            function.is_monitorable = bool(body.get("is_monitorable", False))
        if poll_interval and poll_interval > 0:
            function.annotations.impl["poll_interval"] = Measure(poll_interval, "ms")

    for key in _FUNCTION_NL_KEYS:
        if body.get(key):
            function.annotations.nl[key] = body[key]
    if body.get("doc"):
        function.annotations.impl["doc"] = body["doc"]
    if body.get("url"):
        function.annotations.impl["url"] = body["url"]
    if "confirm" in body and not body["confirm"]:
        function.annotations.impl["confirm"] = False

    for arg in body.get("args", []):
        if arg.get("is_input", True):
            direction = "in req" if arg.get("required", False) else "in opt"
        else:
            direction = "out"
        annotations = Annotations()
        if arg.get("question"):
            annotations.nl["prompt"] = arg["question"]
        if arg.get("json_key"):
            annotations.impl["json_key"] = arg["json_key"]
        function.args.append(ArgumentDef(direction, arg["name"], arg.get("type", "String"), annotations))
    return function


def from_manifest(kind: str, manifest: Dict[str, Any]) -> ClassDef:
    """Build a class definition from a JSON manifest."""
    class_def = ClassDef(kind=kind, extends=list(manifest.get("extends") or []))
    class_def.imports.append(ImportStmt(["loader"], manifest.get("module_type", "org.thingpedia.v2")))
    class_def.imports.append(_config_from_manifest(manifest))

    if manifest.get("name"):
        class_def.annotations.nl["name"] = manifest["name"]
    if manifest.get("description"):
        class_def.annotations.nl["description"] = manifest["description"]
    if manifest.get("version") is not None:
        class_def.annotations.impl["version"] = manifest["version"]
    if manifest.get("child_types"):
        class_def.annotations.impl["child_types"] = list(manifest["child_types"])

    for name, body in (manifest.get("triggers") or {}).items():
        # legacy triggers are monitorable queries
        function = _function_from_manifest("query", name, body)
        function.is_monitorable = True
        class_def.queries[name] = function
    for name, body in (manifest.get("queries") or {}).items():
        class_def.queries[name] = _function_from_manifest("query", name, body)
    for name, body in (manifest.get("actions") or {}).items():
        class_def.actions[name] = _function_from_manifest("action", name, body)
    return class_def


def _auth_to_manifest(config: Optional[ImportStmt]):
    if config is None:
        return {"type": "none"}, {}
    module = config.module
    params = {}

    def scalar_params():
        return {
            name: value for name, value in config.in_params.items()
            if not isinstance(value, ArgMap)
        }

    if module == "org.thingpedia.config.oauth2":
        return {"type": "oauth2", **scalar_params()}, params
    if module == "org.thingpedia.config.custom_oauth":
        return {"type": "custom_oauth"}, params
    if module.startswith("org.thingpedia.config.discovery."):
        discovery_type = module[len("org.thingpedia.config.discovery."):]
        return {"type": "discovery", "discoveryType": discovery_type, **scalar_params()}, params
    if module == "org.thingpedia.config.interactive":
        return {"type": "interactive"}, params
    if module == "org.thingpedia.config.builtin":
        return {"type": "builtin"}, params

    arg_map = config.in_params.get("params") or config.in_params.get("extra_params")
    if isinstance(arg_map, ArgMap):
        params = {name: [name, form_field_type(type_)] for name, type_ in arg_map.args.items()}
    if module == "org.thingpedia.config.basic_auth":
        return {"type": "basic"}, params
    return {"type": "none"}, params


def _function_to_manifest(function: FunctionDef) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "args": [],
        "is_list": function.is_list,
        "canonical": function.annotations.nl.get("canonical", ""),
        "confirmation": function.annotations.nl.get("confirmation", ""),
        "confirmation_remote": function.annotations.nl.get("confirmation_remote", ""),
        "formatted": function.annotations.nl.get("formatted", []),
        "doc": function.annotations.impl.get("doc", ""),
    }
    if function.function_type == "query":
        poll_interval = function.annotations.impl.get("poll_interval")
        if not function.is_monitorable:
            body["poll_interval"] = -1
        elif isinstance(poll_interval, Measure):
            body["poll_interval"] = poll_interval.to_ms() or 0
        else:
            body["poll_interval"] = 0
    else:
        body["confirm"] = function.annotations.impl.get("confirm", True)

    for arg in function.args:
        entry = {
            "name": arg.name,
            "type": arg.type,
            "question": arg.annotations.nl.get("prompt", ""),
            "required": arg.required,
            "is_input": arg.is_input,
        }
        if "json_key" in arg.annotations.impl:
            entry["json_key"] = arg.annotations.impl["json_key"]
        body["args"].append(entry)
    return body


def to_manifest(source) -> Dict[str, Any]:
    """Convert a class definition (or a program holding one) into a JSON manifest."""
    class_def: ClassDef = source.classes[0] if isinstance(source, Program) else source
    auth, params = _auth_to_manifest(class_def.config)
    loader = class_def.loader

    manifest: Dict[str, Any] = {
        "module_type": loader.module if loader else "org.thingpedia.v2",
        "params": params,
        "auth": auth,
        "extends": list(class_def.extends),
        "child_types": list(class_def.annotations.impl.get("child_types", [])),
        "queries": {name: _function_to_manifest(f) for name, f in class_def.queries.items()},
        "actions": {name: _function_to_manifest(f) for name, f in class_def.actions.items()},
    }
    if "name" in class_def.annotations.nl:
        manifest["name"] = class_def.annotations.nl["name"]
    if "description" in class_def.annotations.nl:
        manifest["description"] = class_def.annotations.nl["description"]
    if "version" in class_def.annotations.impl:
        manifest["version"] = class_def.annotations.impl["version"]
    return manifest
