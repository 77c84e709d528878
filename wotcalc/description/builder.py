"""Thing Description assembly.

The builder turns a rendered Thing Model into the served Thing Description by
expanding every declared property, action and event into its forms. The
result is built once and never mutated afterwards; callers get copies.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any

from wotcalc.core.fileio import write_atomic
from wotcalc.core.representations import RepresentationRegistry
from wotcalc.description.forms import (
    AffordanceKind,
    AffordanceTemplate,
    InteractionForm,
    expand_forms,
)

logger = logging.getLogger(__name__)


class DescriptionBuilder:
    """Expands a Thing Model into a Thing Description.

    Example:
        builder = DescriptionBuilder(model, RepresentationRegistry.default())
        td = builder.current_description()
        td["actions"]["add"]["forms"]  # four forms, one per representation pair
        builder.persist(Path("calculator.td.jsonld"))
    """

    def __init__(self, model: dict[str, Any], registry: RepresentationRegistry) -> None:
        self._model = copy.deepcopy(model)
        self._registry = registry
        self._templates = self._read_templates()
        self._forms: dict[tuple[AffordanceKind, str], tuple[InteractionForm, ...]] = {
            (t.kind, t.name): expand_forms(t, registry) for t in self._templates
        }
        self._description = self._build()

    def _read_templates(self) -> list[AffordanceTemplate]:
        default = self._registry.default_representation
        templates: list[AffordanceTemplate] = []
        for kind in AffordanceKind:
            section = self._model.get(kind.value) or {}
            if not isinstance(section, dict):
                raise ValueError(f"Thing Model section '{kind.value}' must be an object")
            for name, affordance in section.items():
                observable = (
                    kind is AffordanceKind.PROPERTY
                    and isinstance(affordance, dict)
                    and affordance.get("observable") is True
                )
                templates.append(AffordanceTemplate(kind, name, default, observable))
        return templates

    def _build(self) -> dict[str, Any]:
        description = copy.deepcopy(self._model)
        description["@type"] = "Thing"
        for template in self._templates:
            affordance = description[template.kind.value][template.name]
            affordance["forms"] = [
                form.to_td() for form in self._forms[(template.kind, template.name)]
            ]
        logger.debug(
            "Built Thing Description with %d affordances", len(self._templates)
        )
        return description

    @property
    def templates(self) -> list[AffordanceTemplate]:
        return list(self._templates)

    def forms_for(self, kind: AffordanceKind, name: str) -> tuple[InteractionForm, ...]:
        """Return the expanded forms of one affordance.

        Raises:
            KeyError: If the affordance is not declared.
        """
        return self._forms[(kind, name)]

    def current_description(self) -> dict[str, Any]:
        """Return a copy of the fully expanded Thing Description."""
        return copy.deepcopy(self._description)

    def persist(self, path: Path) -> bool:
        """Write the Thing Description to disk for offline inspection.

        Failure is logged and not raised; the in-memory description keeps
        being served.

        Returns:
            True if the file was written.
        """
        try:
            write_atomic(path, json.dumps(self._description, indent=2))
        except OSError as e:
            logger.warning("Could not write Thing Description to %s: %s", path, e)
            return False
        logger.info("Thing Description written to %s", path)
        return True
