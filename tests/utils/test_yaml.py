import os
import re
from decimal import Decimal
from pathlib import Path

import pytest

import sqlunit.utils.yaml as yaml
from sqlunit.utils.errors import SQLUnitError


def test_yaml() -> None:
    contents = """unit_tests:
- name: test_orders
  model: orders
  given:
  - input: ref(stg_orders)
    rows:
    - id: 1
      owner: alice
"""

    assert contents == yaml.dump(yaml.load(contents, render_jinja=False))


def test_env_var() -> None:
    contents = "owner: \"{{ env_var('__SQLUNIT_TEST_ENV_USER__', 'nobody') }}\""

    assert yaml.load(contents) == {"owner": "nobody"}
    assert yaml.load(contents, render_jinja=False) == {
        "owner": "{{ env_var('__SQLUNIT_TEST_ENV_USER__', 'nobody') }}"
    }

    os.environ["__SQLUNIT_TEST_ENV_USER__"] = "user"
    try:
        assert yaml.load(contents) == {"owner": "user"}
    finally:
        del os.environ["__SQLUNIT_TEST_ENV_USER__"]


def test_load_from_path(tmp_path: Path) -> None:
    path = tmp_path / "properties.yml"
    path.write_text("models:\n  - name: orders\n")
    assert yaml.load(path) == {"models": [{"name": "orders"}]}

    empty = tmp_path / "empty.yml"
    empty.write_text("")
    assert yaml.load(empty, raise_if_empty=False) == {}

    with pytest.raises(SQLUnitError, match=re.escape(f"YAML source '{empty}' can't be empty.")):
        yaml.load(empty)


def test_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "broken.yml"
    path.write_text("unit_tests: [\n")

    with pytest.raises(SQLUnitError, match=re.escape(f"Failed to parse YAML source '{path}'")):
        yaml.load(path)


def test_decimal_dump() -> None:
    assert yaml.dump({"amount": Decimal("1.50")}) == "amount: '1.50'\n"
