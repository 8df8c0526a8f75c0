"""Synthesize ThingTalk datasets from example rows."""

import re
from typing import Any, Dict, List

from almond_cloud.thingtalk.ast import Example, print_value, string_escape
from almond_cloud.thingtalk.grammar import parse

_DECLARATION_RE = re.compile(r"^[ \r\n\t\v]*let[ \r\n\t\v]")
_EXAMPLE_HEAD_RE = re.compile(r"^[ \r\n\t\v]*(query|action|stream|program)")

# declaration type -> example type
_EXAMPLE_TYPE = {"table": "query", "procedure": "action"}


def example_code(target_code: str) -> str:
    """Normalize stored code to the head of a dataset example."""
    if _DECLARATION_RE.match(target_code):
        declaration = parse(target_code).declarations[0]
        example = Example(
            type=_EXAMPLE_TYPE.get(declaration.type, declaration.type),
            args=declaration.args,
            value=declaration.value,
        )
        return example.head()
    if not _EXAMPLE_HEAD_RE.match(target_code):
        return "program := " + target_code.strip()
    return target_code.strip()


def examples_to_dataset(name: str, language: str, rows: List[Dict[str, Any]]) -> str:
    """
    Build a ``dataset @name language "xx" { ... }`` block.

    Rows with the same code are merged into one example carrying all their
    utterances; the id and counters of the first such row are kept.
    """
    unique: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        target_code = row.get("target_code")
        if not target_code:
            raise ValueError(f"Invalid example {row.get('id')}, missing program")
        code = example_code(target_code)

        if code in unique:
            unique[code]["utterances"].append(row["utterance"])
            unique[code]["preprocessed"].append(row.get("preprocessed") or "")
        else:
            unique[code] = {
                "id": row.get("id"),
                "utterances": [row["utterance"]],
                "preprocessed": [row.get("preprocessed") or ""],
                "click_count": row.get("click_count", 0),
                "like_count": row.get("like_count", 0),
                "name": row.get("name"),
            }

    buffer = []
    for code, example in unique.items():
        lines = [
            f"    {code}",
            f"    #_[utterances={print_value(example['utterances'])}]",
            f"    #_[preprocessed={print_value(example['preprocessed'])}]",
            f"    #[id={example['id']}] #[click_count={example['click_count']}] #[like_count={example['like_count']}]",
        ]
        if example["name"]:
            lines.append(f"    #[name={string_escape(example['name'])}]")
        buffer.append("\n".join(lines) + ";\n")

    return f"dataset @{name} language {string_escape(language)} {{\n" + "\n".join(buffer) + "}"
