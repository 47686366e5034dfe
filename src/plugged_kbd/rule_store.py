"""Persistence of keyboard/input source rules.

Rules are stored as JSON::

    {"version": 1, "rules": [["OLKB Planck", 1, "Planck", "us+altgr-intl"]]}

Each rule is the ``(kbd_id, priority, kbd_name, src_id)`` 4-tuple.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from common.logging_utils import get_logger

from .models import RULE_FORMAT_VERSION
from .models import Rule
from .models import RuleFormatError


class RuleStore:
    """Load and save rules in a JSON file.

    Args:
        path: Rules file; parent directories are created on save
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.logger = get_logger('rule_store')

    def load(self) -> list[Rule]:
        """Read the rules.

        A missing file means no rules. A corrupt file or an unsupported
        version is logged and also yields no rules; malformed entries are
        skipped one by one.

        Returns:
            list[Rule]: Valid rules, in file order
        """
        if not self.path.exists():
            return []

        try:
            with self.path.open('r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.warning(f'Cannot read rules from {self.path}: {e}')
            return []

        if not isinstance(data, dict) or not isinstance(data.get('rules'), list):
            self.logger.warning(f'Ignoring {self.path}: no rule list found')
            return []

        version = data.get('version')
        if version != RULE_FORMAT_VERSION:
            self.logger.warning(f'Ignoring {self.path}: unsupported rule format version {version!r}')
            return []

        rules = []
        for idx, value in enumerate(data['rules'], 1):
            try:
                rules.append(Rule.from_value(value))
            except RuleFormatError as e:
                self.logger.warning(f'Ignoring rule #{idx} in {self.path}: {e}')
        return rules

    def save(self, rules: Iterable[Rule]) -> None:
        """Write the rules, replacing the previous file."""
        data = {
            'version': RULE_FORMAT_VERSION,
            'rules': [list(rule.as_tuple()) for rule in rules],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open('w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        self.logger.debug(f'Saved {len(data["rules"])} rule(s) to {self.path}')
