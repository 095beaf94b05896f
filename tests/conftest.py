from __future__ import annotations

import textwrap
import typing as t
from pathlib import Path

import pytest

from sqlunit.core.config import Config
from sqlunit.core.console import NoopConsole
from sqlunit.core.context import Context
from sqlunit.core.loader import LoadedProject, Loader
from sqlunit.utils.yaml import dump as dump_yaml

ProjectFactory = t.Callable[..., Path]

EMAIL_PROJECT = {
    "models/stg_customers.sql": """
        select 1 as customer_id, 'a@b.com' as email, 'b.com' as email_top_level_domain
    """,
    "models/top_level_email_domains.sql": """
        select 'example.com' as tld
        union all
        select 'gmail.com' as tld
    """,
    "models/dim_customers.sql": """
        with customers as (
            select * from {{ ref('stg_customers') }}
        ),
        accepted_email_domains as (
            select * from {{ ref('top_level_email_domains') }}
        ),
        check_valid_emails as (
            select
                customers.customer_id,
                customers.email,
                coalesce(
                    regexp_matches(customers.email, '{{ var("email_regex") }}')
                    and accepted_email_domains.tld is not null,
                    false
                ) as is_valid_email_address
            from customers
            left join accepted_email_domains
                on customers.email_top_level_domain = lower(accepted_email_domains.tld)
        )
        select * from check_valid_emails
    """,
    "models/properties.yml": """
        models:
          - name: stg_customers
            columns:
              - name: customer_id
                data_type: integer
              - name: email
                data_type: varchar
              - name: email_top_level_domain
                data_type: varchar
    """,
    "tests/test_dim_customers.yml": """
        unit_tests:
          - name: test_is_valid_email_address
            description: Check my is_valid_email_address logic captures all known edge cases
            model: dim_customers
            config:
              tags: [emails]
            given:
              - input: ref('stg_customers')
                rows:
                  - {email: cool@example.com, email_top_level_domain: example.com}
                  - {email: cool@unknown.com, email_top_level_domain: unknown.com}
                  - {email: badgmail.com, email_top_level_domain: gmail.com}
                  - {email: missingdot@gmailcom, email_top_level_domain: gmail.com}
              - input: ref('top_level_email_domains')
                format: csv
                rows: |
                  tld
                  example.com
                  gmail.com
            expect:
              rows:
                - {email: cool@example.com, is_valid_email_address: true}
                - {email: cool@unknown.com, is_valid_email_address: false}
                - {email: badgmail.com, is_valid_email_address: false}
                - {email: missingdot@gmailcom, is_valid_email_address: false}
    """,
}

EMAIL_REGEX = "^[a-z0-9._+-]+@[a-z0-9-]+[.][a-z0-9.-]+$"

EVENTS_PROJECT = {
    "models/stg_events.sql": """
        select 1 as event_id, date '2020-01-01' as event_time
    """,
    "models/fct_events.sql": """
        {{ config(materialized='incremental') }}

        select event_id, event_time
        from {{ ref('stg_events') }}
        {% if is_incremental() %}
        where event_time > (select max(event_time) from {{ this }})
        {% endif %}
    """,
    "models/properties.yml": """
        models:
          - name: stg_events
            columns:
              - name: event_id
                data_type: integer
              - name: event_time
                data_type: date
        unit_tests:
          - name: test_fct_events_incremental
            model: fct_events
            overrides:
              macros:
                is_incremental: true
            given:
              - input: ref('stg_events')
                rows:
                  - {event_id: 1, event_time: 2020-01-01}
                  - {event_id: 2, event_time: 2020-01-02}
                  - {event_id: 3, event_time: 2020-01-03}
              - input: this
                rows:
                  - {event_id: 1, event_time: 2020-01-01}
            expect:
              rows:
                - {event_id: 2, event_time: 2020-01-02}
                - {event_id: 3, event_time: 2020-01-03}
          - name: test_fct_events_full_refresh
            model: fct_events
            given:
              - input: ref('stg_events')
                rows:
                  - {event_id: 1, event_time: 2020-01-01}
                  - {event_id: 2, event_time: 2020-01-02}
                  - {event_id: 3, event_time: 2020-01-03}
            expect:
              rows:
                - {event_id: 1, event_time: 2020-01-01}
                - {event_id: 2, event_time: 2020-01-02}
                - {event_id: 3, event_time: 2020-01-03}
    """,
}


def write_files(root: Path, files: t.Dict[str, str]) -> None:
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).strip() + "\n", encoding="utf-8")


@pytest.fixture
def make_project(tmp_path: Path) -> ProjectFactory:
    """Writes a project into a temporary directory and returns its path."""

    def _make(
        files: t.Dict[str, str], config: t.Optional[t.Dict[str, t.Any]] = None
    ) -> Path:
        write_files(tmp_path, files)
        config = {
            "connection": {"type": "duckdb", "concurrent_tasks": 1},
            **(config or {}),
        }
        (tmp_path / "config.yaml").write_text(dump_yaml(config), encoding="utf-8")
        return tmp_path

    return _make


@pytest.fixture
def make_context(make_project: ProjectFactory) -> t.Iterator[t.Callable[..., Context]]:
    contexts: t.List[Context] = []

    def _make(
        files: t.Dict[str, str], config: t.Optional[t.Dict[str, t.Any]] = None
    ) -> Context:
        context = Context(paths=make_project(files, config), console=NoopConsole())
        contexts.append(context)
        return context

    yield _make

    for context in contexts:
        context.close()


@pytest.fixture
def load_project(make_project: ProjectFactory) -> t.Callable[..., LoadedProject]:
    def _load(files: t.Dict[str, str], **config: t.Any) -> LoadedProject:
        path = make_project(files)
        return Loader(path, Config(**config)).load()

    return _load


@pytest.fixture
def email_context(make_context: t.Callable[..., Context]) -> Context:
    return make_context(EMAIL_PROJECT, {"variables": {"email_regex": EMAIL_REGEX}})


@pytest.fixture
def events_context(make_context: t.Callable[..., Context]) -> Context:
    return make_context(EVENTS_PROJECT)
