import pytest

from errors import ValidationError
from schemas import Variant
from variants import (
    SelectionState,
    SelectValue,
    SetQuantity,
    available_values,
    initial_state,
    is_available,
    max_quantity,
    option_states,
    product_dimensions,
    reduce,
    resolve_variant,
)


def v(color, size, stock, sleeve=None, fit=None):
    return Variant(id=f"{color}-{size}-{sleeve}-{fit}", color=color, size=size, sleeve_type=sleeve, fit=fit, stock=stock)


VARIANTS = [v("A", "S", 3), v("A", "M", 2), v("B", "L", 5), v("B", "XL", 0)]

SHIRTS = [
    v("White", "S", 4, "Short Sleeve"),
    v("White", "M", 6, "Short Sleeve"),
    v("White", "L", 2, "Full Sleeve"),
    v("Blue", "M", 1, "Full Sleeve"),
]


def test_available_values_respects_fixed_dimensions():
    assert available_values(VARIANTS, "size", {"color": "A"}) == {"S", "M"}
    assert available_values(VARIANTS, "size", {"color": "B"}) == {"L"}


def test_unselected_dimensions_are_wildcards():
    assert available_values(VARIANTS, "color", {}) == {"A", "B"}
    assert available_values(VARIANTS, "size", {"color": None}) == {"S", "M", "L"}


def test_available_values_ignores_own_dimension():
    assert available_values(VARIANTS, "size", {"color": "A", "size": "L"}) == {"S", "M"}


def test_option_states_keep_out_of_stock_values_visible():
    states = {o.value: o for o in option_states(VARIANTS, "size", {"color": "B"})}
    assert list(states) == ["S", "M", "L", "XL"]
    assert states["L"].selectable and states["L"].stock == 5
    assert not states["XL"].selectable and states["XL"].stock == 0
    assert not states["S"].selectable


def test_option_states_do_not_invent_values():
    values = [o.value for o in option_states(VARIANTS, "color", {})]
    assert values == ["A", "B"]


def test_unknown_dimension_is_rejected():
    with pytest.raises(ValidationError):
        available_values(VARIANTS, "length", {})


def test_product_dimensions_follow_hierarchy():
    assert product_dimensions(VARIANTS) == ["color", "size"]
    assert product_dimensions(SHIRTS) == ["color", "sleeve_type", "size"]


def test_resolve_variant_exact_match():
    variant = resolve_variant(VARIANTS, {"color": "A", "size": "M"})
    assert variant.id == "A-M-None-None"
    assert max_quantity(variant) == 2


def test_resolve_variant_returns_zero_stock_variant_as_unavailable():
    variant = resolve_variant(VARIANTS, {"color": "B", "size": "XL"})
    assert variant is not None
    assert not is_available(variant)
    assert max_quantity(variant) == 0


def test_resolve_variant_needs_every_schema_dimension():
    assert resolve_variant(VARIANTS, {"color": "A"}) is None
    assert resolve_variant(SHIRTS, {"color": "White", "size": "M"}) is None
    assert resolve_variant(SHIRTS, {"color": "White", "size": "M", "sleeve_type": "Short Sleeve"}).stock == 6


def test_resolve_variant_ignores_dimensions_outside_the_schema():
    assert resolve_variant(VARIANTS, {"color": "A", "size": "S", "fit": "Slim Fit"}).stock == 3


def test_resolve_variant_rejects_ambiguous_matches():
    assert resolve_variant([v("A", "S", 1), v("A", "S", 2)], {"color": "A", "size": "S"}) is None


def test_max_quantity_without_variant():
    assert max_quantity(None) == 0


def test_initial_state_picks_first_available_values():
    state = initial_state(VARIANTS)
    assert state.selection["color"] == "A"
    assert state.selection["size"] == "S"
    assert state.max_quantity == 3
    assert state.quantity == 1


def test_switching_color_resets_invalid_size_to_first_available():
    state = initial_state(VARIANTS)
    state = reduce(VARIANTS, state, SelectValue(dimension="size", value="M"))
    assert state.selection["size"] == "M"

    state = reduce(VARIANTS, state, SelectValue(dimension="color", value="B"))
    assert state.selection["color"] == "B"
    assert state.selection["size"] == "L"
    assert state.max_quantity == 5


def test_switching_color_can_unset_invalid_size():
    state = initial_state(VARIANTS)
    state = reduce(VARIANTS, state, SelectValue(dimension="size", value="M"))
    state = reduce(VARIANTS, state, SelectValue(dimension="color", value="B"), reset="unset")
    assert state.selection["size"] is None
    assert state.max_quantity == 0
    assert state.quantity == 0


def test_valid_downstream_value_survives_upstream_change():
    variants = [v("A", "M", 1), v("B", "M", 4)]
    state = reduce(variants, initial_state(variants), SelectValue(dimension="color", value="B"))
    assert state.selection["size"] == "M"
    assert state.max_quantity == 4


def test_sleeve_type_cascades_into_size():
    state = initial_state(SHIRTS)
    assert state.selection == {"color": "White", "sleeve_type": "Short Sleeve", "size": "S", "fit": None}

    state = reduce(SHIRTS, state, SelectValue(dimension="sleeve_type", value="Full Sleeve"))
    assert state.selection["size"] == "L"

    state = reduce(SHIRTS, state, SelectValue(dimension="color", value="Blue"))
    assert state.selection["sleeve_type"] == "Full Sleeve"
    assert state.selection["size"] == "M"
    assert state.max_quantity == 1


def test_selecting_unavailable_value_leaves_state_unchanged():
    state = reduce(VARIANTS, initial_state(VARIANTS), SelectValue(dimension="color", value="B"))
    same = reduce(VARIANTS, state, SelectValue(dimension="size", value="XL"))
    assert same == state


def test_quantity_is_clamped_to_stock():
    state = reduce(VARIANTS, initial_state(VARIANTS), SelectValue(dimension="size", value="M"))
    assert reduce(VARIANTS, state, SetQuantity(quantity=9)).quantity == 2
    assert reduce(VARIANTS, state, SetQuantity(quantity=0)).quantity == 1


def test_quantity_is_reclamped_after_selection_change():
    state = initial_state(VARIANTS)
    state = reduce(VARIANTS, state, SetQuantity(quantity=3))
    state = reduce(VARIANTS, state, SelectValue(dimension="size", value="M"))
    assert state.quantity == 2


def test_reducer_does_not_mutate_input_state():
    state = SelectionState()
    reduce(VARIANTS, state, SelectValue(dimension="color", value="A"))
    assert state.selection["color"] is None
