"""
Backward compatibility for stored example rows

Old rows store bare example heads (``stream := ...``, ``query (p_x :String) := ...``)
or ``program := ...`` statements. Clients expect declarations, and clients
speaking apiVersion=1 expect the older ``let table x := \\(...) -> ...`` dialect.
"""

import logging
import re
from typing import Any, Dict, List

from almond_cloud.thingtalk.ast import Declaration, Program
from almond_cloud.thingtalk.grammar import parse

logger = logging.getLogger(__name__)

_WS = r"[ \r\n\t\v]"

_LEGACY_HEAD_RE = re.compile(rf"^{_WS}*(stream|query|action){_WS}*(:=|\()")
_PROGRAM_PREFIX_RE = re.compile(rf"^{_WS}*program{_WS}*:=")
_TRAILING_SEMI_RE = re.compile(r"\};\s*$")

# apiVersion=1 dialect
_LET_QUERY_RE = re.compile(rf"^{_WS}*let{_WS}+query{_WS}")
_LET_PARAMS_RE = re.compile(rf"^{_WS}*let{_WS}+(table|action|stream){_WS}+x{_WS}*(\(.+\)){_WS}+:={_WS}+")


def _legacy_to_declaration(target_code: str) -> str:
    dataset = parse(f"dataset @foo {{ {target_code} }}").datasets[0]
    example = dataset.examples[0]
    declaration = Declaration(name="x", type=example.type, args=example.args, value=example.value)
    return Program(declarations=[declaration]).prettyprint(short=True)


def dataset_backward_compat(rows: List[Dict[str, Any]], apply_compat: bool = False) -> List[Dict[str, Any]]:
    """
    Rewrite ``target_code`` of each row in place and drop the ``name`` key.

    Args:
        rows: Example rows as returned by ``almond_cloud.db.examples``
        apply_compat: Also rewrite to the apiVersion=1 dialect

    Returns:
        The same list, for chaining
    """
    for row in rows:
        code = row["target_code"]
        if _LEGACY_HEAD_RE.match(code):
            code = _legacy_to_declaration(code)
        else:
            code = _PROGRAM_PREFIX_RE.sub("", code, count=1)
            code = _TRAILING_SEMI_RE.sub("}", code, count=1)

        if apply_compat:
            code = _LET_QUERY_RE.sub("let table ", code, count=1)
            code = _LET_PARAMS_RE.sub(r"let \1 x := \\\2 -> ", code, count=1)

        row["target_code"] = code
        row.pop("name", None)

    logger.debug(f"[BackwardCompat] Rewrote {len(rows)} example rows (apply_compat={apply_compat})")
    return rows
