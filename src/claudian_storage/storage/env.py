"""Helpers for the free-text ``KEY=VALUE`` environment variable format."""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Tuple

ENV_HASH_KEYS = (
    "ANTHROPIC_MODEL",
    "ANTHROPIC_DEFAULT_OPUS_MODEL",
    "ANTHROPIC_DEFAULT_SONNET_MODEL",
    "ANTHROPIC_DEFAULT_HAIKU_MODEL",
    "ANTHROPIC_BASE_URL",
)


def _iter_pairs(text: str) -> Iterable[Tuple[str, str]]:
    for line in str(text or "").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        index = stripped.find("=")
        if index <= 0:
            continue
        yield stripped[:index], stripped[index + 1 :]


def parse_environment_variables(text: str) -> Dict[str, str]:
    """Parse env text into a mapping; comments, blanks and quotes are handled."""

    result: Dict[str, str] = {}
    for key, value in _iter_pairs(text):
        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        if key:
            result[key] = value
    return result


def env_object_to_text(env: object) -> str:
    if not isinstance(env, Mapping):
        return ""
    lines = []
    for key, value in env.items():
        if not isinstance(key, str) or not isinstance(value, str):
            continue
        lines.append("{0}={1}".format(key, value))
    return "\n".join(lines)


def merge_environment_variables(existing: str, additional: str) -> str:
    """Merge two env texts; entries from ``additional`` win on key collision."""

    merged: Dict[str, str] = {}
    for source in (existing, additional):
        for key, value in _iter_pairs(source):
            merged[key] = value
    return "\n".join("{0}={1}".format(key, value) for key, value in merged.items())


def compute_env_hash(text: str) -> str:
    """Fingerprint of the model/provider variables, used to detect env changes."""

    env = parse_environment_variables(text)
    pairs = sorted("{0}={1}".format(key, env[key]) for key in ENV_HASH_KEYS if env.get(key))
    return "|".join(pairs)
