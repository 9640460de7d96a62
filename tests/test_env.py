from __future__ import annotations

from claudian_storage.storage.env import (
    compute_env_hash,
    env_object_to_text,
    merge_environment_variables,
    parse_environment_variables,
)


def test_parse_skips_comments_blanks_and_malformed_lines():
    text = "# comment\n\nA=1\n  B = two  \n=nokey\nnoequals\nC=\"quoted\"\nD='single'\nE=x=y\n"

    assert parse_environment_variables(text) == {
        "A": "1",
        "B": "two",
        "C": "quoted",
        "D": "single",
        "E": "x=y",
    }


def test_env_object_to_text_ignores_non_string_values():
    assert env_object_to_text({"A": "1", "B": 2, "C": "3"}) == "A=1\nC=3"
    assert env_object_to_text(["A=1"]) == ""


def test_merge_prefers_additional_on_collision():
    merged = merge_environment_variables("A=1\nB=2", "B=3\nC=4")

    assert parse_environment_variables(merged) == {"A": "1", "B": "3", "C": "4"}
    assert merge_environment_variables("", "") == ""


def test_env_hash_only_tracks_model_variables():
    base = compute_env_hash("ANTHROPIC_MODEL=opus\nOTHER=1")

    assert base == "ANTHROPIC_MODEL=opus"
    assert compute_env_hash("ANTHROPIC_MODEL=opus\nOTHER=2") == base
    assert compute_env_hash("ANTHROPIC_MODEL=sonnet") != base
