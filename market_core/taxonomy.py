"""AM process and material taxonomies.

Vendor labels are classified by ordered rule tables: each rule is a
(predicate, result) pair over the trimmed, lower-cased label and the first
matching rule wins. Reordering or adding a rule is a one-line change.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Sequence, Tuple


Predicate = Callable[[str], bool]
Rule = Tuple[Predicate, str]

UNKNOWN_PROCESS = "Unknown"
OTHER_MATERIAL = "Other"


def contains(*needles: str) -> Predicate:
    return lambda v: any(n in v for n in needles)


def starts_with(*prefixes: str) -> Predicate:
    return lambda v: v.startswith(prefixes)


def equals(*values: str) -> Predicate:
    return lambda v: v in values


def all_of(*predicates: Predicate) -> Predicate:
    return lambda v: all(p(v) for p in predicates)


def any_of(*predicates: Predicate) -> Predicate:
    return lambda v: any(p(v) for p in predicates)


_IS_DED = any_of(starts_with("ded"), contains("directed energy deposition"))
_IS_PBF = contains("pbf")

PROCESS_RULES: List[Rule] = [
    (contains("bjt", "binder"), "Binder Jetting"),
    (contains("cold spray"), "Cold Spray"),
    (all_of(_IS_DED, contains("arc", "wire")), "DED (Arc/Wire)"),
    (all_of(_IS_DED, contains("laser")), "DED (Laser)"),
    (_IS_DED, "Directed Energy Deposition"),
    (all_of(_IS_PBF, contains("eb")), "PBF-EB (Metal)"),
    (all_of(_IS_PBF, contains("lb/p", "polymer")), "PBF-LB (Polymer)"),
    (_IS_PBF, "PBF-LB (Metal)"),
    (contains("slm"), "PBF-LB (Metal)"),
    (contains("sls"), "PBF-LB (Polymer)"),
    (contains("mex", "fdm", "fff", "material extrusion"), "Material Extrusion"),
    (contains("vpp", "sla", "dlp", "vat"), "Vat Photopolymerization"),
    (contains("mj", "material jetting"), "Material Jetting"),
]

PROCESS_SORT_ORDER: Tuple[str, ...] = (
    "Binder Jetting",
    "Cold Spray",
    "DED (Arc/Wire)",
    "DED (Laser)",
    "Directed Energy Deposition",
    "PBF-EB (Metal)",
    "PBF-LB (Metal)",
    "PBF-LB (Polymer)",
    "Material Extrusion",
    "Vat Photopolymerization",
    "Material Jetting",
    UNKNOWN_PROCESS,
)

MATERIAL_RULES: List[Rule] = [
    (starts_with("metal"), "Metal"),
    (any_of(starts_with("polymer"), equals("plastic", "resin")), "Polymer"),
    (starts_with("ceramic"), "Ceramic"),
    (starts_with("sand"), "Sand"),
    (contains("composite", "carbon"), "Composite"),
    (contains("concrete", "cement"), "Concrete"),
    (contains("bio", "tissue"), "Bio"),
]

MATERIAL_SORT_ORDER: Tuple[str, ...] = (
    "Metal",
    "Polymer",
    "Ceramic",
    "Sand",
    "Composite",
    "Concrete",
    "Bio",
    OTHER_MATERIAL,
)

# Broad catalog families used by the technology/material lookup.
TECHNOLOGY_FAMILY_RULES: List[Rule] = [
    (contains("pbf", "sls", "powder bed"), "Powder Bed Fusion"),
    (contains("mex", "fdm", "fff"), "Material Extrusion"),
    (contains("vpp", "sla", "dlp"), "Vat Photopolymerization"),
    (contains("bjt", "binder"), "Binder Jetting"),
    (contains("am-lwc", "directed energy"), "Directed Energy Deposition"),
]

MATERIAL_FAMILY_RULES: List[Rule] = [
    (contains("pla", "abs", "petg", "nylon", "pc", "asa", "tpu"), "Plastics"),
    (contains("steel", "aluminum", "titanium", "bronze", "brass", "316l", "inconel"), "Metals"),
    (contains("resin", "photopolymer"), "Resins"),
    (contains("ceramic", "sand"), "Ceramics"),
    (contains("carbon", "glass", "kevlar"), "Composites"),
]


def classify(value: object, rules: Sequence[Rule], default: str) -> Optional[str]:
    """Return the result of the first rule matching `value`, or `default`.

    None and the empty string give None. A whitespace-only label is still a
    label and falls through to `default`.
    """
    if value is None or value == "":
        return None
    v = str(value).strip().lower()
    for predicate, result in rules:
        if predicate(v):
            return result
    return default


def normalize_process(value: object) -> Optional[str]:
    return classify(value, PROCESS_RULES, UNKNOWN_PROCESS)


def normalize_material(value: object) -> Optional[str]:
    return classify(value, MATERIAL_RULES, OTHER_MATERIAL)


def categorize_technology(value: object) -> Optional[str]:
    return classify(value, TECHNOLOGY_FAMILY_RULES, "Other")


def categorize_material_family(value: object) -> Optional[str]:
    return classify(value, MATERIAL_FAMILY_RULES, "Other")


def sort_by_priority(values: Iterable[str], order: Sequence[str]) -> List[str]:
    """Deduplicate and order by `order`; values outside it go last, alphabetically."""
    rank = {v: i for i, v in enumerate(order)}
    unique = {str(v) for v in values if v is not None}
    return sorted(unique, key=lambda v: (0, rank[v], "") if v in rank else (1, 0, v))


def sort_processes(values: Iterable[str]) -> List[str]:
    return sort_by_priority(values, PROCESS_SORT_ORDER)


def sort_materials(values: Iterable[str]) -> List[str]:
    return sort_by_priority(values, MATERIAL_SORT_ORDER)
