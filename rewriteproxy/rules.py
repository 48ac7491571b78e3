"""User match/replace rules and the cookie token that carries them."""

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

import re2

logger = logging.getLogger(__name__)


class InvalidRule(ValueError):
    pass


@dataclass(frozen=True)
class Rule:
    match: str
    replace: str

    @classmethod
    def create(cls, match: str, replace: str) -> "Rule":
        """Build a rule, refusing patterns that do not compile."""
        try:
            _compile(match)
        except re2.error as e:
            raise InvalidRule(f"invalid pattern {match!r}: {e}") from e
        return cls(match, replace)


RuleList = Tuple[Rule, ...]


def append_rule(rules: RuleList, rule: Rule) -> RuleList:
    return tuple(rules) + (rule,)


def encode_rules(rules: Iterable[Rule]) -> str:
    payload = [{"Match": rule.match, "Replace": rule.replace} for rule in rules]
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def decode_rules(token: Optional[str]) -> RuleList:
    """Decode a cookie token; anything unreadable counts as no rules."""
    if not token:
        return ()
    try:
        raw = base64.b64decode(token, validate=True)
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.debug("Ignoring unreadable rules token: %s", e)
        return ()

    if not isinstance(payload, list):
        logger.debug("Ignoring rules token of type %s", type(payload).__name__)
        return ()

    rules = []
    for item in payload:
        if not isinstance(item, dict):
            logger.debug("Ignoring rules token with entry %r", item)
            return ()
        fields = {str(key).lower(): value for key, value in item.items()}
        match = fields.get("match", "")
        replace = fields.get("replace", "")
        if not isinstance(match, str) or not isinstance(replace, str):
            logger.debug("Ignoring rules token with entry %r", item)
            return ()
        rules.append(Rule(match, replace))
    return tuple(rules)


CompiledRule = Tuple[Any, Rule]


def _options() -> re2.Options:
    options = re2.Options()
    options.log_errors = False
    return options


def _compile(match: str):
    return re2.compile(match, _options())


def _template(replace: str) -> str:
    # re2 unescapes literal template text as latin-1 bytes; keep it ASCII.
    return replace.encode("ascii", "backslashreplace").decode("ascii")


def compile_rules(rules: Iterable[Rule]) -> List[CompiledRule]:
    """Compile rules in order, logging and skipping any that fail."""
    compiled = []
    for rule in rules:
        try:
            compiled.append((_compile(rule.match), rule))
        except re2.error as e:
            logger.warning("Skipping rule %r: %s", rule.match, e)
    return compiled


def apply_rules(text: str, compiled: List[CompiledRule]) -> str:
    """Run every rule over ``text`` in sequence.

    Matching is linear in the length of ``text`` whatever the pattern.
    A rule whose replacement template cannot be expanded is removed from
    ``compiled`` so the rest of the pass does not retry it.
    """
    for entry in list(compiled):
        pattern, rule = entry
        try:
            text = pattern.sub(_template(rule.replace), text)
        except (re2.error, IndexError, ValueError) as e:
            logger.warning("Dropping rule %r for this page: %s", rule.match, e)
            compiled.remove(entry)
    return text
