"""
Prompt templates and per-namespace batching parameters.

Each namespace owns a template with a single placeholder that receives the
JSON-encoded chunk, a hard cap on chunk size, an output-token estimate per
item, and a validator for the values the model returns.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

DOMAINS = "domains"
NAMES = "names"

DOMAIN_PROMPT = """Given the list of company names, find the main website domain for each.
List: {items}
Respond EXCLUSIVELY with a single JSON object that maps each company name to its domain (e.g., "company.com"). If you cannot find a domain, use "N/A".
Example: { "Example Company Inc.": "example.com", "Ghost Company": "N/A" }"""

NAME_SPLIT_PROMPT = """Split each name into [firstName, lastName, title]. Title: "Mr."/"Mrs." or "" if ambiguous.
Names: {items}
Return JSON object mapping each name to array [firstName, lastName, title].
Example: { "John Smith": ["John", "Smith", "Mr."], "Maria Garcia": ["Maria", "Garcia", "Mrs."] }"""


def _is_domain_value(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_name_parts(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) == 3
        and all(isinstance(part, str) for part in value)
    )


@dataclass(frozen=True, slots=True)
class NamespaceConfig:
    name: str
    template: str
    hard_cap: int
    tokens_per_item: int
    is_valid_value: Callable[[Any], bool]

    def build_prompt(self, items: list[str]) -> str:
        # templates contain literal braces
        return self.template.replace("{items}", json.dumps(items, ensure_ascii=False))


NAMESPACES: dict[str, NamespaceConfig] = {
    DOMAINS: NamespaceConfig(
        name=DOMAINS,
        template=DOMAIN_PROMPT,
        hard_cap=100,
        tokens_per_item=15,  # "Company Name": "domain.com"
        is_valid_value=_is_domain_value,
    ),
    NAMES: NamespaceConfig(
        name=NAMES,
        template=NAME_SPLIT_PROMPT,
        hard_cap=50,
        tokens_per_item=12,  # "Name": ["First", "Last", "Title"]
        is_valid_value=_is_name_parts,
    ),
}


def get_namespace(name: str) -> NamespaceConfig:
    try:
        return NAMESPACES[name]
    except KeyError:
        raise ValueError(f"Unknown namespace '{name}'. Available: {', '.join(NAMESPACES)}") from None
