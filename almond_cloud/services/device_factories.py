"""
Device Factory Descriptors

A factory descriptor tells a client how to configure a new instance of a
device: which configuration flow to run and which form fields to show.
It is derived from the ``config`` import of the device's class.
"""

from typing import Any, Dict, List, Optional

from almond_cloud.schemas.enums import FactoryType
from almond_cloud.thingtalk.ast import ArgMap, ClassDef
from almond_cloud.thingtalk.manifest import form_field_type


def _fields_from_arg_map(arg_map: Optional[ArgMap]) -> List[Dict[str, str]]:
    if not isinstance(arg_map, ArgMap):
        return []
    return [
        {"name": name, "label": name, "type": form_field_type(type_)}
        for name, type_ in arg_map.args.items()
    ]


def make_device_factory(class_def: ClassDef, device: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Build the factory descriptor of a device.

    Args:
        class_def: Parsed class of the device
        device: Device row (needs ``primary_kind``, ``name`` and ``category``)

    Returns:
        The descriptor, or None if the device cannot be configured by users
        (abstract classes, system devices and builtins)

    Raises:
        ValueError: If the class uses an unknown configuration module
    """
    if class_def.is_abstract or device.get("category") == "system":
        return None

    config = class_def.config
    module = config.module if config else "org.thingpedia.config.none"
    in_params = config.in_params if config else {}

    def factory(factory_type: FactoryType, **extra) -> Dict[str, Any]:
        return {
            "type": factory_type.value,
            "category": device.get("category"),
            "kind": device["primary_kind"],
            "text": device.get("name"),
            **extra,
        }

    if module == "org.thingpedia.config.builtin":
        return None
    if module.startswith("org.thingpedia.config.discovery."):
        return factory(FactoryType.DISCOVERY, discoveryType=module[len("org.thingpedia.config.discovery."):])
    if module == "org.thingpedia.config.interactive":
        return factory(FactoryType.INTERACTIVE)
    if module == "org.thingpedia.config.none":
        return factory(FactoryType.NONE)
    if module in ("org.thingpedia.config.oauth2", "org.thingpedia.config.custom_oauth"):
        return factory(FactoryType.OAUTH2)
    if module == "org.thingpedia.config.form":
        return factory(FactoryType.FORM, fields=_fields_from_arg_map(in_params.get("params")))
    if module == "org.thingpedia.config.basic_auth":
        fields = [
            {"name": "username", "label": "Username", "type": "text"},
            {"name": "password", "label": "Password", "type": "password"},
        ]
        fields += _fields_from_arg_map(in_params.get("extra_params"))
        return factory(FactoryType.FORM, fields=fields)

    raise ValueError(f"Unrecognized config mixin {module}")
