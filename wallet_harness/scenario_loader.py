"""
Scenario Loader: reads YAML scenario files and returns ``TestScenario`` models.

A file holds either one scenario (``name`` at the root) or a ``scenarios``
list.  Each step is a mapping with exactly one key:

    literal:  payload sent verbatim (may be deliberately invalid)
    template: {currency?, type?, amount_range?: {min?, max?}} filled by the
              data generator when the scenario runs

Example::

    name: weekend-topup
    description: two credits then a small debit
    steps:
      - literal: {currency: USD, amount: 250.00, type: credit}
      - template: {currency: EUR, type: credit}
      - template: {type: debit, amount_range: {min: 1, max: 20}}
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from wallet_harness.data_generator import TestDataGenerator
from wallet_harness.exceptions import ScenarioFileError
from wallet_harness.models import TestScenario, TransactionTemplate

logger = logging.getLogger(__name__)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its dict."""
    with open(path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ScenarioFileError(path, "top level must be a mapping")
    return raw


def _parse_step(path: Path, index: int, step: Any) -> dict[str, Any] | TransactionTemplate:
    if not isinstance(step, dict) or len(step) != 1:
        raise ScenarioFileError(path, f"step {index} must have exactly one of 'literal' or 'template'")

    (kind, body), = step.items()
    if kind == "literal":
        if not isinstance(body, dict):
            raise ScenarioFileError(path, f"step {index}: literal payload must be a mapping")
        return dict(body)
    if kind == "template":
        try:
            return TransactionTemplate.model_validate(body or {})
        except ValidationError as exc:
            raise ScenarioFileError(path, f"step {index}: {exc.errors(include_url=False)[0]['msg']}") from exc
    raise ScenarioFileError(path, f"step {index}: unknown step kind '{kind}'")


def _parse_scenario(path: Path, item: Any) -> TestScenario:
    if not isinstance(item, dict) or not item.get("name"):
        raise ScenarioFileError(path, "every scenario needs a 'name'")
    raw_steps = item.get("steps") or []
    if not isinstance(raw_steps, list):
        raise ScenarioFileError(path, f"scenario '{item['name']}': 'steps' must be a list")
    steps = [_parse_step(path, i, s) for i, s in enumerate(raw_steps)]
    return TestScenario(name=str(item["name"]), description=item.get("description", ""), steps=steps)


def load_scenario_file(path: str | Path) -> list[TestScenario]:
    """
    Parse a single scenario YAML file and return a list of ``TestScenario``.
    """
    path = Path(path)
    raw = _load_yaml(path)
    items: Any = raw["scenarios"] if "scenarios" in raw else [raw]
    if not isinstance(items, list):
        raise ScenarioFileError(path, "'scenarios' must be a list")

    scenarios = [_parse_scenario(path, item) for item in items]
    for scenario in scenarios:
        logger.info("Loaded scenario '%s' (%d steps) from %s", scenario.name, len(scenario.steps), path.name)
    return scenarios


def load_all_scenarios(directory: str | Path) -> list[TestScenario]:
    """
    Recursively scan *directory* for ``.yaml`` / ``.yml`` files and return
    all parsed scenarios.
    """
    root = Path(directory)
    if not root.is_dir():
        logger.warning("Scenarios directory does not exist: %s", root)
        return []

    scenarios: list[TestScenario] = []
    for path in sorted(root.rglob("*.y*ml")):
        if path.suffix in (".yaml", ".yml"):
            scenarios.extend(load_scenario_file(path))

    logger.info("Total scenarios loaded: %d", len(scenarios))
    return scenarios


def register_scenarios(generator: TestDataGenerator, directory: str | Path | None = None) -> list[str]:
    """
    Load every scenario under *directory* (default: the generator config's
    ``scenarios_dir``) into *generator*; returns their names.
    """
    directory = directory or generator.config.scenarios_dir
    if not directory:
        return []
    scenarios = load_all_scenarios(directory)
    for scenario in scenarios:
        generator.register_scenario(scenario)
    return [s.name for s in scenarios]
