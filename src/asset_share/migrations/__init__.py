"""Share schema migrations: discovery, ordering and re-run safety checks.

The SQL files beside this module define the ``share`` schema used by the
Supabase repositories. They are applied with ``supabase db push``; this
module does not execute SQL, it only lints it.

Re-run contract (every file must satisfy):
    1. CREATE SCHEMA / TABLE / INDEX / EXTENSION use IF NOT EXISTS.
    2. CREATE FUNCTION / VIEW use CREATE OR REPLACE.
    3. CREATE POLICY / TRIGGER are preceded by the matching DROP ... IF EXISTS.
    4. DROP TABLE / INDEX use IF EXISTS.
    5. ADD COLUMN uses IF NOT EXISTS (warning only).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

# NNN_description.sql
_MIGRATION_RE = re.compile(r'^(\d{3})_.*\.sql$')

MIGRATIONS_DIR = Path(__file__).parent


@dataclass(frozen=True, slots=True)
class MigrationFile:
    sequence: int
    filename: str
    path: Path


@dataclass
class ValidationResult:
    path: Path
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class _Rule:
    pattern: re.Pattern[str]
    message: str
    severity: str = 'error'


def _rule(regex: str, message: str, severity: str = 'error') -> _Rule:
    return _Rule(re.compile(regex, re.IGNORECASE), message, severity)


_LINE_RULES: tuple[_Rule, ...] = (
    _rule(r'^create\s+schema\s+(?!if\s+not\s+exists)', 'CREATE SCHEMA without IF NOT EXISTS'),
    _rule(r'^create\s+table\s+(?!if\s+not\s+exists)', 'CREATE TABLE without IF NOT EXISTS'),
    _rule(
        r'^create\s+(unique\s+)?index\s+(?!if\s+not\s+exists)',
        'CREATE INDEX without IF NOT EXISTS',
    ),
    _rule(
        r'^create\s+extension\s+(?!if\s+not\s+exists)',
        'CREATE EXTENSION without IF NOT EXISTS',
    ),
    _rule(r'^create\s+function\s+', 'CREATE FUNCTION without OR REPLACE'),
    _rule(r'^create\s+view\s+', 'CREATE VIEW without OR REPLACE'),
    _rule(r'^drop\s+table\s+(?!if\s+exists)', 'DROP TABLE without IF EXISTS'),
    _rule(r'^drop\s+index\s+(?!if\s+exists)', 'DROP INDEX without IF EXISTS'),
    _rule(
        r'\badd\s+column\s+(?!if\s+not\s+exists)',
        'ADD COLUMN without IF NOT EXISTS',
        'warning',
    ),
)

# (kind, CREATE regex, DROP IF EXISTS regex): the create must follow a drop
# of the same name.
_PAIRED_OBJECTS: tuple[tuple[str, re.Pattern[str], re.Pattern[str]], ...] = (
    (
        'POLICY',
        re.compile(r'^create\s+policy\s+"?([\w.]+)"?', re.IGNORECASE),
        re.compile(r'^drop\s+policy\s+if\s+exists\s+"?([\w.]+)"?', re.IGNORECASE),
    ),
    (
        'TRIGGER',
        re.compile(r'^create\s+(?:or\s+replace\s+)?trigger\s+"?([\w.]+)"?', re.IGNORECASE),
        re.compile(r'^drop\s+trigger\s+if\s+exists\s+"?([\w.]+)"?', re.IGNORECASE),
    ),
)


def discover_migrations(directory: Path | None = None) -> list[MigrationFile]:
    """Migration files in ``directory`` sorted by sequence number.

    Raises:
        ValueError: Two files share a sequence number.
    """
    d = directory or MIGRATIONS_DIR
    seen: dict[int, str] = {}
    results: list[MigrationFile] = []
    for p in sorted(d.iterdir()):
        m = _MIGRATION_RE.match(p.name)
        if not p.is_file() or not m:
            continue
        seq = int(m.group(1))
        if seq in seen:
            raise ValueError(
                f'Duplicate migration sequence {seq:03d}: {seen[seq]} and {p.name}'
            )
        seen[seq] = p.name
        results.append(MigrationFile(sequence=seq, filename=p.name, path=p))
    results.sort(key=lambda mf: mf.sequence)
    return results


def _statement_lines(text: str) -> list[tuple[int, str]]:
    """Non-blank, non-comment lines outside dollar-quoted function bodies."""
    lines: list[tuple[int, str]] = []
    in_body = False
    for number, raw in enumerate(text.splitlines(), start=1):
        stripped = raw.strip()
        if raw.count('$$') % 2 == 1:
            in_body = not in_body
            continue
        if in_body or not stripped or stripped.startswith('--'):
            continue
        lines.append((number, stripped))
    return lines


def validate_idempotency(sql_path: Path) -> ValidationResult:
    """Check one migration file against the re-run contract."""
    result = ValidationResult(path=sql_path)
    dropped: dict[str, set[str]] = {kind: set() for kind, _, _ in _PAIRED_OBJECTS}

    for number, line in _statement_lines(sql_path.read_text()):
        matched_pair = False
        for kind, create_re, drop_re in _PAIRED_OBJECTS:
            drop = drop_re.match(line)
            if drop:
                dropped[kind].add(drop.group(1).lower())
                matched_pair = True
                break
            create = create_re.match(line)
            if create:
                if create.group(1).lower() not in dropped[kind]:
                    result.errors.append(
                        f'Line {number}: CREATE {kind} {create.group(1)} without '
                        f'preceding DROP {kind} IF EXISTS'
                    )
                matched_pair = True
                break
        if matched_pair:
            continue

        for rule in _LINE_RULES:
            if rule.pattern.search(line):
                target = result.errors if rule.severity == 'error' else result.warnings
                target.append(f'Line {number}: {rule.message}')

    return result


def validate_all(directory: Path | None = None) -> dict[str, ValidationResult]:
    """Validate every discovered migration, keyed by filename."""
    return {
        mf.filename: validate_idempotency(mf.path)
        for mf in discover_migrations(directory)
    }


def check_sequence_gaps(migrations: Sequence[MigrationFile]) -> list[str]:
    """Warnings for any gap between consecutive sequence numbers."""
    warnings: list[str] = []
    for prev, curr in zip(migrations, migrations[1:]):
        if curr.sequence != prev.sequence + 1:
            warnings.append(
                f'Gap in sequence: {prev.sequence:03d} -> {curr.sequence:03d} '
                f'(expected {prev.sequence + 1:03d})'
            )
    return warnings
