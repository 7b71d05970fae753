"""Tests for the process / material rule tables."""

import pytest

from market_core.taxonomy import (
    MATERIAL_SORT_ORDER,
    PROCESS_SORT_ORDER,
    categorize_material_family,
    categorize_technology,
    normalize_material,
    normalize_process,
    sort_materials,
    sort_processes,
)


class TestNormalizeProcess:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("BJT", "Binder Jetting"),
            ("Binder jetting", "Binder Jetting"),
            ("Cold Spray", "Cold Spray"),
            ("DED-arc", "DED (Arc/Wire)"),
            ("DED wire", "DED (Arc/Wire)"),
            ("DED-LB", "Directed Energy Deposition"),
            ("DED laser", "DED (Laser)"),
            ("PBF-EB", "PBF-EB (Metal)"),
            ("PBF-LB/P", "PBF-LB (Polymer)"),
            ("PBF polymer", "PBF-LB (Polymer)"),
            ("PBF-LB/M", "PBF-LB (Metal)"),
            ("SLM", "PBF-LB (Metal)"),
            ("SLS", "PBF-LB (Polymer)"),
            ("FDM", "Material Extrusion"),
            ("FFF", "Material Extrusion"),
            ("SLA", "Vat Photopolymerization"),
            ("DLP", "Vat Photopolymerization"),
            ("MJ", "Material Jetting"),
            ("Mystery process", "Unknown"),
        ],
    )
    def test_rules(self, raw, expected) -> None:
        assert normalize_process(raw) == expected

    def test_blank_is_none(self) -> None:
        assert normalize_process(None) is None
        assert normalize_process("") is None

    def test_whitespace_only_is_unknown(self) -> None:
        assert normalize_process("   ") == "Unknown"

    @pytest.mark.parametrize("raw", ["x", "123", "pbf", "ded", "ÅÄÖ", "sls slm", "arc"])
    def test_closed_enumeration(self, raw) -> None:
        assert normalize_process(raw) in PROCESS_SORT_ORDER


class TestNormalizeMaterial:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Metal", "Metal"),
            ("metal powder", "Metal"),
            ("Polymer", "Polymer"),
            ("plastic", "Polymer"),
            ("Resin", "Polymer"),
            ("Ceramics", "Ceramic"),
            ("Sand", "Sand"),
            ("Carbon fibre", "Composite"),
            ("Concrete", "Concrete"),
            ("Bio-ink", "Bio"),
            ("Wax", "Other"),
        ],
    )
    def test_rules(self, raw, expected) -> None:
        assert normalize_material(raw) == expected

    def test_always_in_enumeration(self) -> None:
        for raw in ["x", "glass", "metallic", "  resin  "]:
            assert normalize_material(raw) in MATERIAL_SORT_ORDER


class TestSorting:
    def test_processes_by_priority_then_unknown_alphabetical(self) -> None:
        values = ["Zeta", "Material Jetting", "Binder Jetting", "Alpha", "Binder Jetting", "PBF-LB (Metal)"]
        assert sort_processes(values) == ["Binder Jetting", "PBF-LB (Metal)", "Material Jetting", "Alpha", "Zeta"]

    def test_materials(self) -> None:
        assert sort_materials(["Other", "Sand", "Metal", "Wax"]) == ["Metal", "Sand", "Other", "Wax"]


class TestCatalogFamilies:
    def test_technology(self) -> None:
        assert categorize_technology("SLS") == "Powder Bed Fusion"
        assert categorize_technology("FDM") == "Material Extrusion"
        assert categorize_technology("DLP") == "Vat Photopolymerization"
        assert categorize_technology("something new") == "Other"

    def test_material_family(self) -> None:
        assert categorize_material_family("PETG") == "Plastics"
        assert categorize_material_family("Titanium Ti64") == "Metals"
        assert categorize_material_family("Tough resin") == "Resins"
        assert categorize_material_family("Wood") == "Other"
