"""Tests for work identifier parsing and work lookup."""
from __future__ import annotations

import pytest

from import_orchestrator.core.exceptions import InvalidWorkIdentifierError, WorkNotFoundError
from import_orchestrator.services.work_registry import WorkRegistry, parse_work_identifier


@pytest.mark.parametrize(
    "work_iden, file_iden",
    [
        ("FID", "FID"),
        ("FID.V1", "FID"),
        ("FID.V1.X", "FID"),
        (".FID.V1", "FID"),
    ],
)
def test_parse_takes_first_token(work_iden, file_iden):
    assert parse_work_identifier(work_iden) == file_iden


@pytest.mark.parametrize("work_iden", [None, "", ".", "..."])
def test_parse_rejects_identifier_without_token(work_iden):
    with pytest.raises(InvalidWorkIdentifierError) as excinfo:
        parse_work_identifier(work_iden)

    assert str(excinfo.value).startswith("InvalidWorkIdentifier: ")


class TestResolve:
    def test_returns_works_in_sort_order(self, session_factory, seed_work):
        seed_work(pipeline_key="second", sort_order=2)
        seed_work(pipeline_key="first", sort_order=1)
        seed_work(file_iden="OTHER", pipeline_key="other")

        works = WorkRegistry(session_factory).resolve("FID")

        assert [work.pipeline_key for work in works] == ["first", "second"]

    def test_unknown_file_identifier(self, session_factory):
        with pytest.raises(WorkNotFoundError) as excinfo:
            WorkRegistry(session_factory).resolve("NOPE.V1")

        assert str(excinfo.value) == "WorkNotFound: no work registered for file identifier 'NOPE'"
