"""
Tests for the scenario loader.
"""

from pathlib import Path
from textwrap import dedent

import pytest

from wallet_harness.data_generator import TestDataGenerator
from wallet_harness.exceptions import ScenarioFileError
from wallet_harness.models import HarnessConfig, TransactionTemplate, TransactionType
from wallet_harness.scenario_loader import load_all_scenarios, load_scenario_file, register_scenarios


@pytest.fixture
def tmp_scenario(tmp_path: Path):
    """Helper to write a YAML scenario file and return its path."""

    def _write(content: str, name: str = "scenario.yaml") -> Path:
        p = tmp_path / name
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(dedent(content))
        return p

    return _write


def test_single_scenario(tmp_scenario):
    path = tmp_scenario("""\
        name: weekend-topup
        description: two credits then a small debit
        steps:
          - literal: {currency: USD, amount: 250.00, type: credit}
          - template: {currency: EUR, type: credit}
          - template: {type: debit, amount_range: {min: 1, max: 20}}
    """)

    scenarios = load_scenario_file(path)
    assert len(scenarios) == 1
    scenario = scenarios[0]
    assert scenario.name == "weekend-topup"
    assert scenario.steps[0] == {"currency": "USD", "amount": 250.0, "type": "credit"}
    assert isinstance(scenario.steps[1], TransactionTemplate)
    assert scenario.steps[1].type == TransactionType.CREDIT
    assert scenario.steps[2].amount_range.max == 20


def test_multiple_scenarios(tmp_scenario):
    path = tmp_scenario("""\
        scenarios:
          - name: a
            steps:
              - template: {}
          - name: b
            steps: []
    """)
    scenarios = load_scenario_file(path)
    assert [s.name for s in scenarios] == ["a", "b"]
    assert scenarios[0].steps == [TransactionTemplate()]


def test_literal_may_be_invalid(tmp_scenario):
    path = tmp_scenario("""\
        name: bad-input
        steps:
          - literal: {currency: usd, amount: -1, type: refund}
    """)
    assert load_scenario_file(path)[0].steps[0]["currency"] == "usd"


@pytest.mark.parametrize("content,reason", [
    ("- just\n- a list\n", "top level must be a mapping"),
    ("description: nameless\n", "needs a 'name'"),
    ("name: x\nsteps:\n  - literal: {}\n    template: {}\n", "exactly one"),
    ("name: x\nsteps:\n  - replay: {}\n", "unknown step kind"),
    ("name: x\nsteps:\n  - literal: [1, 2]\n", "must be a mapping"),
    ("name: x\nsteps:\n  - template: {colour: red}\n", "step 0"),
    ("scenarios:\n", "must be a list"),
    ("scenarios: {name: x}\n", "must be a list"),
    ("name: x\nsteps: {literal: {}}\n", "'steps' must be a list"),
])
def test_malformed_files(tmp_scenario, content, reason):
    path = tmp_scenario(content)
    with pytest.raises(ScenarioFileError, match=reason):
        load_scenario_file(path)


def test_load_all_recurses(tmp_scenario, tmp_path: Path):
    tmp_scenario("name: one\nsteps: []\n", "one.yaml")
    tmp_scenario("name: two\nsteps: []\n", "nested/two.yml")
    tmp_scenario("not: scenario\n", "notes.txt")
    names = sorted(s.name for s in load_all_scenarios(tmp_path))
    assert names == ["one", "two"]


def test_missing_directory(tmp_path: Path):
    assert load_all_scenarios(tmp_path / "nope") == []


def test_register_scenarios(tmp_scenario, tmp_path: Path):
    tmp_scenario("""\
        name: salary
        steps:
          - literal: {currency: USD, amount: 3000, type: credit}
          - template: {currency: USD, type: debit}
    """)
    generator = TestDataGenerator(seed=1)
    assert register_scenarios(generator, tmp_path) == ["salary"]
    specs = generator.generate_scenario("salary")
    assert specs[0]["amount"] == 3000
    assert specs[1]["type"] == "debit"


def test_register_from_configured_directory(tmp_scenario, tmp_path: Path):
    tmp_scenario("name: from-config\nsteps: []\n")
    generator = TestDataGenerator(HarnessConfig(scenarios_dir=str(tmp_path)))
    assert register_scenarios(generator) == ["from-config"]
    assert register_scenarios(TestDataGenerator()) == []
