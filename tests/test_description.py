"""Tests for status description resolution.

Run with: pytest tests/test_description.py -v
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from git_status_wrapper.description import describe, regex_body
from git_status_wrapper.errors import ConfigError, LogReadError
from git_status_wrapper.schemas import CommitState

PATTERN = r"/status: (\w+)/"


def log_of(text: str) -> MagicMock:
    return MagicMock(return_value=text)


class TestRegexBody:
    @pytest.mark.parametrize(
        ("description", "expected"),
        [
            ("/abc/", "abc"),
            ("//", ""),
            ("/", None),
            ("abc/", None),
            ("plain", None),
        ],
    )
    def test_detection(self, description: str, expected: str | None) -> None:
        assert regex_body(description) == expected


class TestDescribe:
    def test_pending_uses_description_verbatim(self, status_context) -> None:
        ctx = status_context.model_copy(
            update={"description": "/not a regex here/", "success_description": PATTERN}
        )
        read_log = log_of("status: OK")

        assert describe(CommitState.PENDING, ctx, read_log) == "/not a regex here/"
        read_log.assert_not_called()

    def test_literal_success_description(self, status_context) -> None:
        ctx = status_context.model_copy(update={"success_description": "All good"})
        read_log = log_of("")

        assert describe(CommitState.SUCCESS, ctx, read_log) == "All good"
        read_log.assert_not_called()

    def test_failure_uses_failure_description(self, status_context) -> None:
        ctx = status_context.model_copy(
            update={"success_description": "yay", "failure_description": "nay"}
        )
        assert describe(CommitState.FAILURE, ctx, log_of("")) == "nay"

    def test_regex_match_returns_first_group(self, status_context) -> None:
        ctx = status_context.model_copy(update={"success_description": PATTERN})
        log = "building...\nstatus: OK\nstatus: LATER\n"

        assert describe(CommitState.SUCCESS, ctx, log_of(log)) == "OK"

    def test_regex_is_multiline(self, status_context) -> None:
        ctx = status_context.model_copy(update={"failure_description": r"/^ERROR (.+)$/"})
        log = "line one\nERROR compile failed in foo.c\nline three\n"

        assert describe(CommitState.FAILURE, ctx, log_of(log)) == "compile failed in foo.c"

    def test_regex_without_group_returns_whole_match(self, status_context) -> None:
        ctx = status_context.model_copy(update={"success_description": r"/\d+ tests passed/"})

        assert describe(CommitState.SUCCESS, ctx, log_of("ran: 12 tests passed")) == "12 tests passed"

    def test_regex_no_match_keeps_literal_and_warns(self, status_context) -> None:
        ctx = status_context.model_copy(update={"success_description": PATTERN})
        warn = MagicMock()

        result = describe(CommitState.SUCCESS, ctx, log_of("nothing to see"), warn=warn)

        assert result == PATTERN
        warn.assert_called_once()
        assert r"status: (\w+)" in warn.call_args.args[0]

    def test_unreadable_log_propagates(self, status_context) -> None:
        ctx = status_context.model_copy(update={"success_description": PATTERN})
        read_log = MagicMock(side_effect=LogReadError("gone"))

        with pytest.raises(LogReadError):
            describe(CommitState.SUCCESS, ctx, read_log)

    def test_invalid_regex(self, status_context) -> None:
        ctx = status_context.model_copy(update={"success_description": "/(unclosed/"})

        with pytest.raises(ConfigError):
            describe(CommitState.SUCCESS, ctx, log_of(""))
