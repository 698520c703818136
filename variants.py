"""
Variant matrix resolution for the product page.

A product's variants form a sparse matrix over the dimensions below, each cell
carrying its own stock. Dimensions are hierarchical: the chosen color narrows
the sleeve types, which narrow the sizes, which narrow the fits. The selection
state is driven by a pure reducer so that changing an upstream dimension
deterministically resets any downstream value it invalidated.
"""
from typing import Dict, List, Literal, Optional, Sequence, Set, Union

from pydantic import BaseModel, Field

from errors import ValidationError
from schemas import Variant

DIMENSIONS = ("color", "sleeve_type", "size", "fit")

Selection = Dict[str, Optional[str]]
ResetPolicy = Literal["first", "unset"]


class OptionState(BaseModel):
    value: str
    stock: int
    selectable: bool


class SelectionState(BaseModel):
    selection: Selection = Field(default_factory=lambda: {d: None for d in DIMENSIONS})
    quantity: int = 1
    max_quantity: int = 0


class SelectValue(BaseModel):
    dimension: str
    value: Optional[str] = None


class SetQuantity(BaseModel):
    quantity: int


Action = Union[SelectValue, SetQuantity]


def _check_dimension(dimension: str) -> None:
    if dimension not in DIMENSIONS:
        raise ValidationError("Unknown variant dimension", {"dimension": dimension, "allowed": list(DIMENSIONS)})


def _matches(variant: Variant, partial: Selection, skip: Optional[str] = None) -> bool:
    for dim, value in partial.items():
        if dim == skip or value is None:
            continue
        if getattr(variant, dim) != value:
            return False
    return True


def _ordered_values(variants: Sequence[Variant], dimension: str) -> List[str]:
    seen: List[str] = []
    for v in variants:
        value = getattr(v, dimension)
        if value is not None and value not in seen:
            seen.append(value)
    return seen


def _upstream(selection: Selection, dimension: str) -> Selection:
    return {d: selection.get(d) for d in DIMENSIONS[:DIMENSIONS.index(dimension)]}


def product_dimensions(variants: Sequence[Variant]) -> List[str]:
    """Dimensions carried by at least one variant, in hierarchy order."""
    return [d for d in DIMENSIONS if any(getattr(v, d) is not None for v in variants)]


def available_values(variants: Sequence[Variant], dimension: str, partial: Selection) -> Set[str]:
    """Values of ``dimension`` that some in-stock variant matching ``partial`` carries.

    Dimensions missing from ``partial`` (or set to None) do not constrain the
    result; the value ``partial`` holds for ``dimension`` itself is ignored.
    """
    _check_dimension(dimension)
    return {
        getattr(v, dimension)
        for v in variants
        if v.stock > 0 and getattr(v, dimension) is not None and _matches(v, partial, skip=dimension)
    }


def option_states(variants: Sequence[Variant], dimension: str, partial: Selection) -> List[OptionState]:
    """Every value the product has for ``dimension``, each with its matching stock.

    Values with no stock under ``partial`` stay listed but unselectable; values
    the product never carries are not listed at all.
    """
    _check_dimension(dimension)
    states = []
    for value in _ordered_values(variants, dimension):
        stock = sum(
            v.stock for v in variants
            if getattr(v, dimension) == value and _matches(v, partial, skip=dimension)
        )
        states.append(OptionState(value=value, stock=stock, selectable=stock > 0))
    return states


def resolve_variant(variants: Sequence[Variant], selection: Selection) -> Optional[Variant]:
    """The single variant matching ``selection`` on every dimension the product uses.

    A dimension missing from ``selection`` only matches variants that lack it
    too. Returns None when nothing, or more than one variant, matches.
    """
    schema = product_dimensions(variants)
    candidates = [v for v in variants if all(getattr(v, d) == selection.get(d) for d in schema)]
    if len(candidates) != 1:
        return None
    return candidates[0]


def max_quantity(variant: Optional[Variant]) -> int:
    return variant.stock if variant is not None else 0


def is_available(variant: Optional[Variant]) -> bool:
    return max_quantity(variant) > 0


def _clamp(quantity: int, ceiling: int) -> int:
    return min(max(quantity, 1), ceiling)


def _cascade(variants: Sequence[Variant], selection: Selection, start: int, reset: ResetPolicy) -> Selection:
    schema = product_dimensions(variants)
    for dim in DIMENSIONS[start:]:
        if dim not in schema:
            continue
        current = selection.get(dim)
        available = available_values(variants, dim, _upstream(selection, dim))
        if current is not None and current in available:
            continue
        if reset == "first":
            ordered = [value for value in _ordered_values(variants, dim) if value in available]
            selection[dim] = ordered[0] if ordered else None
        else:
            selection[dim] = None
    return selection


def _settle(variants: Sequence[Variant], selection: Selection, quantity: int) -> SelectionState:
    ceiling = max_quantity(resolve_variant(variants, selection))
    return SelectionState(selection=selection, quantity=_clamp(quantity, ceiling), max_quantity=ceiling)


def initial_state(variants: Sequence[Variant]) -> SelectionState:
    selection = _cascade(variants, {d: None for d in DIMENSIONS}, 0, "first")
    return _settle(variants, selection, 1)


def reduce(variants: Sequence[Variant], state: SelectionState, action: Action,
           reset: ResetPolicy = "first") -> SelectionState:
    if isinstance(action, SetQuantity):
        return state.model_copy(update={"quantity": _clamp(action.quantity, state.max_quantity)})

    _check_dimension(action.dimension)
    if action.value is not None:
        allowed = available_values(variants, action.dimension, _upstream(state.selection, action.dimension))
        if action.value not in allowed:
            return state
    selection = dict(state.selection)
    selection[action.dimension] = action.value
    selection = _cascade(variants, selection, DIMENSIONS.index(action.dimension) + 1, reset)
    return _settle(variants, selection, state.quantity)


def describe(variants: Sequence[Variant], state: SelectionState) -> dict:
    """Option lists for every dimension the product uses, given the current selection."""
    variant = resolve_variant(variants, state.selection)
    return {
        "selection": state.selection,
        "options": {
            dim: [o.model_dump() for o in option_states(variants, dim, _upstream(state.selection, dim))]
            for dim in product_dimensions(variants)
        },
        "variant": variant.model_dump() if variant else None,
        "max_quantity": max_quantity(variant),
        "quantity": state.quantity,
        "in_stock": is_available(variant),
    }
