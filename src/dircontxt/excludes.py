from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from .config import DEFAULT_IGNORED_DIRS, IGNORE_FILE_NAME
from .models import IgnoreRule, RuleKind

logger = logging.getLogger(__name__)


def compile_rule(line: str) -> IgnoreRule | None:
    """Compile one ignore-file line; ``None`` for blanks, comments and junk."""
    text = line.strip()
    if not text or text.startswith("#"):
        return None

    negated = text.startswith("!")
    if negated:
        text = text[1:]

    dir_only = text.endswith("/")
    text = text.rstrip("/")

    anchored = text.startswith("/")
    text = text.lstrip("/")

    if not text:
        logger.warning("Skipping invalid ignore pattern %r", line.strip())
        return None

    if anchored or "/" in text:
        if text.endswith("*"):
            return IgnoreRule(text[:-1], RuleKind.PATH_PREFIX, dir_only, negated)
        return IgnoreRule(text, RuleKind.FULL_PATH, dir_only, negated)
    if text.startswith("*"):
        return IgnoreRule(text[1:], RuleKind.NAME_SUFFIX, dir_only, negated)
    return IgnoreRule(text, RuleKind.BASENAME, dir_only, negated)


def parse_rules(lines: Iterable[str]) -> list[IgnoreRule]:
    rules = []
    for line in lines:
        rule = compile_rule(line)
        if rule is not None:
            rules.append(rule)
    return rules


def _rule_matches(rule: IgnoreRule, relpath: str, name: str, is_dir: bool) -> bool:
    if rule.kind == RuleKind.BASENAME:
        return name == rule.pattern
    if rule.kind == RuleKind.NAME_SUFFIX:
        return name.endswith(rule.pattern)
    if rule.kind == RuleKind.FULL_PATH:
        return relpath == rule.pattern
    target = f"{relpath}/" if is_dir else relpath
    return target.startswith(rule.pattern)


def is_ignored(
    relpath: str, name: str, is_dir: bool, rules: Iterable[IgnoreRule]
) -> bool:
    """Evaluate ``rules`` in order; the last matching rule decides."""
    target = relpath.rstrip("/")
    ignored = False
    for rule in rules:
        if rule.dir_only and not is_dir:
            continue
        if _rule_matches(rule, target, name, is_dir):
            ignored = not rule.negated
    return ignored


def load_rule_file(path: Path) -> list[IgnoreRule]:
    if not path.is_file():
        return []
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as exc:
        logger.warning("Cannot read ignore file %s: %s", path, exc)
        return []
    rules = parse_rules(lines)
    logger.info("Loaded %d ignore rules from %s", len(rules), path)
    return rules


def default_rules(output_names: Iterable[str] = ()) -> list[IgnoreRule]:
    rules = [IgnoreRule(name, RuleKind.BASENAME, dir_only=True) for name in DEFAULT_IGNORED_DIRS]
    rules.append(IgnoreRule(IGNORE_FILE_NAME, RuleKind.BASENAME))
    for name in output_names:
        if name:
            rules.append(IgnoreRule(name, RuleKind.BASENAME))
    return rules


class IgnoreRules:
    """Ordered rule list; sources added later take precedence."""

    def __init__(self, rules: Iterable[IgnoreRule] = ()) -> None:
        self.rules: list[IgnoreRule] = list(rules)

    def __len__(self) -> int:
        return len(self.rules)

    def add_lines(self, lines: Iterable[str]) -> None:
        self.rules.extend(parse_rules(lines))

    def load_if_exists(self, path: Path) -> None:
        self.rules.extend(load_rule_file(path))

    def is_ignored(self, relpath: str, name: str, is_dir: bool) -> bool:
        return is_ignored(relpath, name, is_dir, self.rules)


def load_ignore_rules(
    target_dir: Path,
    output_names: Iterable[str] = (),
    global_ignore: Path | None = None,
) -> IgnoreRules:
    """Defaults, then the user-global file, then the target's own ignore file."""
    rules = IgnoreRules(default_rules(output_names))
    if global_ignore is not None:
        rules.load_if_exists(global_ignore)
    rules.load_if_exists(target_dir / IGNORE_FILE_NAME)
    return rules
