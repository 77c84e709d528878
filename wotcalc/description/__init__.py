"""Thing Description generation: Thing Model rendering and form expansion."""

from wotcalc.description.builder import DescriptionBuilder
from wotcalc.description.forms import (
    AffordanceKind,
    AffordanceTemplate,
    InteractionForm,
    expand_forms,
    make_form,
)
from wotcalc.description.template import render_thing_model, substitute_placeholders

__all__ = [
    "AffordanceKind",
    "AffordanceTemplate",
    "DescriptionBuilder",
    "InteractionForm",
    "expand_forms",
    "make_form",
    "render_thing_model",
    "substitute_placeholders",
]
