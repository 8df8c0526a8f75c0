"""
Thingpedia Client (cloud side)

Answers Thingpedia queries from the database on behalf of an API caller.

Each call first resolves the caller's developer key to an authorization
scope, then runs the resource queries with that scope and renders the
rows in the requested format. Rendered forms (manifests, pretty-printed
ThingTalk, datasets) are rebuilt on every call; only the stored code is
persisted.
"""

import asyncio
import inspect
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from almond_cloud.config import settings
from almond_cloud.db import device_schemas as schema_model
from almond_cloud.db import devices as device_model
from almond_cloud.db import entities as entity_model
from almond_cloud.db import examples as example_model
from almond_cloud.db import organizations as organization_model
from almond_cloud.db import strings as string_model
from almond_cloud.errors import BadRequestError, ForbiddenError, NotFoundError
from almond_cloud.schemas.enums import DEVICE_CATEGORIES, DEVICE_SUBCATEGORIES, AcceptFormat
from almond_cloud.services.backward_compat import dataset_backward_compat
from almond_cloud.services.class_defs import merge_class_def_and_schema, schema_list_to_class_defs
from almond_cloud.services.datasets import examples_to_dataset
from almond_cloud.services.device_factories import make_device_factory
from almond_cloud.services.discovery import DiscoveryDatabase, DiscoveryDecoder
from almond_cloud.services.location import resolve_location
from almond_cloud.storage import code_storage
from almond_cloud.thingtalk.ast import ClassDef
from almond_cloud.thingtalk.grammar import parse
from almond_cloud.thingtalk.manifest import from_manifest, to_manifest

logger = logging.getLogger(__name__)

# Part of the Thingpedia RPC interface but not served by this deployment:
# calling them raises NotImplementedError.
UNSERVED_METHODS = ("getAppCode", "getApps", "getMixins")

# RPC name -> method name. Only these can be called remotely.
RPC_METHODS = {
    "getModuleLocation": "get_module_location",
    "getDeviceCode": "get_device_code",
    "getSchemas": "get_schemas",
    "getDeviceSetup": "get_device_setup",
    "getDeviceSetup2": "get_device_setup2",
    "getDeviceFactories": "get_device_factories",
    "getDeviceList": "get_device_list",
    "getDeviceSearch": "get_device_search",
    "getKindByDiscovery": "get_kind_by_discovery",
    "getExamplesByKinds": "get_examples_by_kinds",
    "getExamplesByKey": "get_examples_by_key",
    "clickExample": "click_example",
    "lookupEntity": "lookup_entity",
    "lookupLocation": "lookup_location",
}

_JSON_CODE_RE = re.compile(r"^\s*\{")
_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]+")


def locale_to_language(locale: Optional[str]) -> str:
    """``en-US`` -> ``en``"""
    if not locale:
        return "en"
    return re.split(r"[-_@.,]", locale)[0].lower()


def _dataset_key(value: str) -> str:
    return _NON_ALNUM_RE.sub("_", value)


@dataclass
class FactoryResult:
    """Outcome of resolving the factory of one device in a batch."""

    device: Dict[str, Any]
    factory: Optional[Dict[str, Any]] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ThingpediaClientCloud:
    """Database-backed Thingpedia client for one API caller."""

    def __init__(self, developer_key: Optional[str], locale: Optional[str], db: Session):
        self.developer_key = developer_key
        self.locale = locale or "en-US"
        self.language = locale_to_language(self.locale)
        self.db = db

    async def invoke(self, method: str, args: List[Any]) -> Any:
        """
        Call an allowlisted RPC method by its wire name.

        Database-backed methods are synchronous and run in the threadpool;
        only methods doing network I/O of their own are awaited directly.
        """
        if method in UNSERVED_METHODS:
            raise NotImplementedError(f"{method} is not supported by this Thingpedia")
        if method not in RPC_METHODS:
            raise NotFoundError(f"Invalid method {method}")
        handler = getattr(self, RPC_METHODS[method])
        try:
            inspect.signature(handler).bind(*args)
        except TypeError as e:
            raise BadRequestError(f"Invalid arguments to {method}: {e}")
        logger.debug(f"[ThingpediaClient] {method} ({self.locale}) args={args!r}")
        if inspect.iscoroutinefunction(handler):
            return await handler(*args)
        return await asyncio.to_thread(handler, *args)

    # ---- authorization ----

    def _get_org(self):
        return organization_model.get_by_developer_key(self.db, self.developer_key)

    def _get_scope(self) -> Optional[int]:
        return organization_model.scope_of(self._get_org())

    # ---- device code ----

    def get_module_location(self, kind: str, version: Optional[Union[int, str]] = None) -> str:
        scope = self._get_scope()
        device = device_model.get_download_version(self.db, kind, scope)
        if not device["downloadable"]:
            raise BadRequestError("No Code Available")

        if version == "":
            version = None
        max_version = device["version"]
        if max_version is None or (version is not None and int(version) > max_version):
            raise ForbiddenError("Not Authorized")
        version = max_version if version is None else int(version)

        approved_version = device["approved_version"]
        developer = approved_version is None or version > approved_version
        return code_storage.get_download_location(kind, version, developer)

    def get_device_code(self, kind: str, accept: Union[str, AcceptFormat] = AcceptFormat.THINGTALK):
        accept = AcceptFormat.parse(accept)
        scope = self._get_scope()
        devices = device_model.get_full_code_by_primary_kind(self.db, kind, scope)
        if not devices:
            raise NotFoundError()
        device = devices[0]

        is_json = bool(_JSON_CODE_RE.match(device["code"]))
        manifest = None
        if is_json:
            manifest = json.loads(device["code"])
            manifest["version"] = device["version"]
            code = from_manifest(kind, manifest).prettyprint()
        else:
            code = device["code"]

        # stored text is already valid ThingTalk: skip the parse/print round trip
        if self.language == "en" and accept is AcceptFormat.THINGTALK:
            return code

        parsed = parse(code)
        class_def = parsed.classes[0]
        if self.language != "en":
            schemas = schema_model.get_metas_by_kinds(self.db, [kind], scope, self.language)
            merge_class_def_and_schema(class_def, schemas[0] if schemas else None)

        if accept is AcceptFormat.JSON:
            if not is_json:
                manifest = to_manifest(parsed)
            manifest["developer"] = device["version"] != device["approved_version"]
            return manifest
        return parsed.prettyprint()

    def get_schemas(
        self,
        kinds: List[str],
        with_metadata: bool = False,
        accept: Union[str, AcceptFormat] = AcceptFormat.THINGTALK,
    ):
        if not kinds:
            return {}
        accept = AcceptFormat.parse(accept)
        scope = self._get_scope()
        if with_metadata:
            rows = schema_model.get_metas_by_kinds(self.db, kinds, scope, self.language)
        else:
            rows = schema_model.get_types_and_names_by_kinds(self.db, kinds, scope)

        if accept is AcceptFormat.JSON:
            return {
                row["kind"]: {
                    "kind_type": row["kind_type"],
                    "triggers": row["triggers"],
                    "actions": row["actions"],
                    "queries": row["queries"],
                }
                for row in rows
            }
        return schema_list_to_class_defs(rows, with_metadata).prettyprint()

    # ---- device lists ----

    @staticmethod
    def _check_class(klass: Optional[str]) -> Optional[str]:
        """Column to filter on for ``klass``: category, subcategory or None for all."""
        if not klass:
            return None
        if klass in DEVICE_CATEGORIES:
            return "category"
        if klass in DEVICE_SUBCATEGORIES:
            return "subcategory"
        raise BadRequestError("Invalid class parameter")

    def get_device_search(self, q: str) -> List[Dict[str, Any]]:
        return device_model.get_by_fuzzy_search(self.db, q, self._get_scope())

    def get_device_list(self, klass: Optional[str] = None, page: int = 0, page_size: int = 10) -> List[Dict[str, Any]]:
        """
        One page of devices, optionally filtered by category.

        One row more than ``page_size`` is fetched; receiving it tells the
        caller that another page exists.
        """
        column = self._check_class(klass)
        scope = self._get_scope()
        page = int(page)
        page_size = int(page_size)
        offset = page * page_size
        limit = page_size + 1

        if column == "category":
            return device_model.get_by_category(self.db, klass, scope, offset, limit)
        if column == "subcategory":
            return device_model.get_by_subcategory(self.db, klass, scope, offset, limit)
        return device_model.get_all_approved(self.db, scope, offset, limit)

    # ---- device factories ----

    def _ensure_device_factory(self, device: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        factory = device.get("factory")
        if factory is not None:
            return json.loads(factory) if isinstance(factory, str) else factory

        code = device["code"]
        if _JSON_CODE_RE.match(code):
            class_def: ClassDef = from_manifest(device["primary_kind"], json.loads(code))
        else:
            class_def = parse(code).classes[0]
        return make_device_factory(class_def, device)

    def _resolve_factories(self, devices: List[Dict[str, Any]]) -> List[FactoryResult]:
        results = []
        for device in devices:
            try:
                results.append(FactoryResult(device, factory=self._ensure_device_factory(device)))
            except Exception as e:
                logger.warning(f"[ThingpediaClient] Failed to build factory for {device.get('primary_kind')}: {e}")
                results.append(FactoryResult(device, error=e))
        return results

    def get_device_factories(self, klass: Optional[str] = None) -> List[Dict[str, Any]]:
        column = self._check_class(klass)
        scope = self._get_scope()
        if column == "category":
            devices = device_model.get_by_category_with_code(self.db, klass, scope)
        elif column == "subcategory":
            devices = device_model.get_by_subcategory_with_code(self.db, klass, scope)
        else:
            devices = device_model.get_all_approved_with_code(self.db, scope)

        return [result.factory for result in self._resolve_factories(devices) if result.factory]

    def get_device_setup(self, kinds: List[str]) -> Dict[str, Any]:
        """
        Factory of the device serving each kind.

        Kinds served by several devices map to a ``multiple`` descriptor
        listing all of them; kinds served by none map to an empty one.
        """
        if not kinds:
            return {}
        kinds = [settings.MESSAGING_DEVICE if kind == "messaging" else kind for kind in kinds]
        devices = device_model.get_devices_for_setup(self.db, kinds, self._get_scope())

        result: Dict[str, Any] = {}
        for item in self._resolve_factories(devices):
            if not item.factory:
                continue
            for_kind = item.device["for_kind"]
            if for_kind in result:
                if result[for_kind]["type"] != "multiple":
                    result[for_kind] = {"type": "multiple", "choices": [result[for_kind]]}
                result[for_kind]["choices"].append(item.factory)
            else:
                result[for_kind] = item.factory
            if for_kind == settings.MESSAGING_DEVICE:
                result["messaging"] = item.factory

        for kind in kinds:
            result.setdefault(kind, {"type": "multiple", "choices": []})
        return result

    def get_device_setup2(self, kinds: List[str]) -> Dict[str, Any]:
        return self.get_device_setup(kinds)

    def get_kind_by_discovery(self, body: Dict[str, Any]) -> str:
        return DiscoveryDecoder(DiscoveryDatabase(self.db)).decode(body)

    # ---- examples ----

    def _render_examples(self, rows: List[Dict[str, Any]], accept: AcceptFormat, name: str):
        if accept is AcceptFormat.JSON_V1:
            return dataset_backward_compat(rows, True)
        if accept is AcceptFormat.JSON:
            return dataset_backward_compat(rows, False)
        return examples_to_dataset(f"org.thingpedia.dynamic.{name}", self.language, rows)

    def get_examples_by_key(self, key: str, accept: Union[str, AcceptFormat] = AcceptFormat.THINGTALK):
        accept = AcceptFormat.parse(accept)
        rows = example_model.get_by_key(self.db, key, self._get_scope(), self.language)
        return self._render_examples(rows, accept, f"by_key.{_dataset_key(key)}")

    def get_examples_by_kinds(self, kinds: Union[str, List[str]], accept: Union[str, AcceptFormat] = AcceptFormat.THINGTALK):
        if isinstance(kinds, str):
            kinds = [kinds]
        if not kinds:
            return []
        accept = AcceptFormat.parse(accept)
        rows = example_model.get_by_kinds(self.db, kinds, self._get_scope(), self.language)
        name = "by_kinds." + "__".join(_dataset_key(kind) for kind in kinds)
        return self._render_examples(rows, accept, name)

    def get_all_examples(self, accept: Union[str, AcceptFormat] = AcceptFormat.THINGTALK):
        accept = AcceptFormat.parse(accept)
        rows = example_model.get_base_by_language(self.db, self._get_scope(), self.language)
        return self._render_examples(rows, accept, "everything")

    def click_example(self, example_id: int) -> None:
        example_model.click(self.db, int(example_id))

    # ---- entities, strings and locations ----

    def lookup_entity(self, entity_type: str, search_term: str) -> Dict[str, Any]:
        entity = entity_model.get(self.db, entity_type, self.language)
        rows = entity_model.lookup_with_type(self.db, self.language, entity_type, search_term)
        return {
            "data": [
                {
                    "type": row.entity_id,
                    "value": row.entity_value,
                    "canonical": row.entity_canonical,
                    "name": row.entity_name,
                }
                for row in rows
            ],
            "meta": {
                "name": entity.name,
                "has_ner_support": entity.has_ner_support,
                "is_well_known": entity.is_well_known,
            },
        }

    async def lookup_location(self, search_term: str) -> List[Dict[str, Any]]:
        return await resolve_location(self.locale, search_term)

    def get_all_device_names(self) -> List[Dict[str, Any]]:
        return schema_model.get_all_approved(self.db, self._get_scope())

    def get_thingpedia_snapshot(self, get_meta: bool, snapshot_id: int = -1) -> List[Dict[str, Any]]:
        scope = self._get_scope()
        if snapshot_id >= 0:
            if get_meta:
                return schema_model.get_snapshot_meta(self.db, snapshot_id, self.language, scope)
            return schema_model.get_snapshot_types(self.db, snapshot_id, scope)
        if get_meta:
            return schema_model.get_current_snapshot_meta(self.db, self.language, scope)
        return schema_model.get_current_snapshot_types(self.db, scope)

    def get_all_entity_types(self, snapshot_id: int = -1) -> List[Dict[str, Any]]:
        if snapshot_id >= 0:
            rows = entity_model.get_snapshot(self.db, snapshot_id)
        else:
            rows = entity_model.get_all(self.db)
        return [
            {
                "type": row.id,
                "name": row.name,
                "is_well_known": row.is_well_known,
                "has_ner_support": row.has_ner_support,
            }
            for row in rows
        ]

    def get_all_strings(self) -> List[Dict[str, Any]]:
        return [
            {
                "type": row.type_name,
                "name": row.name,
                "license": row.license,
                "attribution": row.attribution,
            }
            for row in string_model.get_all(self.db, self.language)
        ]
