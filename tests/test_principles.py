"""Tests for the principles catalogue and focus resolution."""
from __future__ import annotations

from periodizer.models.principles import PrinciplesCatalog


def test_catalog_categories(catalog):
    assert catalog.names("attacking")[:2] == ["Penetration", "Support"]
    assert catalog.category_of("Compactness") == "defending"
    assert catalog.category_of("Tiki-taka") is None
    assert catalog.find("transition", "Transition to Defend") == "Transition to Defend (Negative Transition)"
    assert catalog.find("transition", "Gegenpress") == "Gegenpress"


def test_default_focus(catalog):
    focus = catalog.resolve_focus()

    assert focus.attacking == ["Penetration", "Support"]
    assert focus.defending == ["Pressure", "Cover"]
    assert focus.transition == [
        "Transition to Attack (Positive Transition)",
        "Transition to Defend (Negative Transition)",
    ]


def test_selection_is_grouped_and_validated(catalog):
    focus = catalog.resolve_focus(["Cover", "Width", "Unknown", "Counter-Pressing", "Width"])

    assert focus.attacking == ["Width"]
    assert focus.defending == ["Cover"]
    assert focus.transition == ["Counter-Pressing"]


def test_selection_capped_at_six(catalog):
    selected = catalog.names("attacking") + catalog.names("defending")

    assert len(catalog.resolve_focus(selected).names()) == 6


def test_only_unknown_names_fall_back_to_defaults(catalog):
    assert catalog.resolve_focus(["Tiki-taka"]) == catalog.resolve_focus()


def test_from_mapping_tolerates_missing_categories():
    catalog = PrinciplesCatalog.from_mapping({"attacking": [{"name": "Width"}]})

    assert catalog.names() == ["Width"]
    assert catalog.resolve_focus().names() == ["Width"]
