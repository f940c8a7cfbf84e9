"""
Kernel Boundary & Invariants Contract.

Tests that enforce the architectural boundaries between packages:

1. costing_kernel/** may NOT import costing_engines, costing_services,
   or costing_config. The kernel never depends upward.

2. costing_engines/** are pure: no sqlalchemy, no persistence modules,
   no services. They take DTOs in and return DTOs out.

3. costing_kernel/domain/** has no database dependencies.

4. The kernel invariants declaration is complete and non-empty.

These tests read source code via AST and cannot break anything.
"""

import ast
import glob
from pathlib import Path

from costing_kernel.invariants import (
    ALL_COSTING_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    CostingInvariant,
)

REPO_ROOT = Path(__file__).resolve().parents[2]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(root: str) -> list[str]:
    """Return all .py files under root (relative to the repository)."""
    return sorted(glob.glob(f"{REPO_ROOT / root}/**/*.py", recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    try:
        source = Path(filepath).read_text()
        tree = ast.parse(source, filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _violations(root: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(root):
        for lineno, module in _extract_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    rel = Path(filepath).relative_to(REPO_ROOT)
                    found.append(f"  {rel}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Test: Kernel has no upward dependencies
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:
    """costing_kernel/** must not import engines, services or config."""

    def test_sources_exist(self):
        assert _python_files("costing_kernel"), "costing_kernel/ not found"

    def test_kernel_does_not_import_forbidden_packages(self):
        violations = _violations("costing_kernel", FORBIDDEN_KERNEL_IMPORTS)

        assert not violations, (
            "Kernel boundary violation: costing_kernel/** must not import "
            f"{', '.join(FORBIDDEN_KERNEL_IMPORTS)}.\n"
            + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Engines are pure
# ---------------------------------------------------------------------------

class TestEnginePurity:
    """costing_engines/** plan allocations without touching the database."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "costing_services",
        "costing_config",
        "costing_kernel.db",
        "costing_kernel.models",
        "costing_kernel.services",
        "costing_kernel.selectors",
    )

    def test_engines_have_no_persistence_imports(self):
        violations = _violations("costing_engines", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Engine purity violation: costing_engines/** must not depend on "
            "persistence or services.\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Domain types are database-free
# ---------------------------------------------------------------------------

class TestKernelDomainPurity:
    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "costing_kernel.db",
        "costing_kernel.models",
    )

    def test_domain_has_no_database_imports(self):
        violations = _violations("costing_kernel/domain", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Domain purity violation: costing_kernel/domain/** must not "
            "import database code.\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Invariants declaration
# ---------------------------------------------------------------------------

class TestKernelInvariantsDeclaration:
    REQUIRED = {
        "FIFO_ORDER",
        "NO_OVERSELL",
        "LAYER_BOUNDS",
        "CONSERVATION",
        "AVERAGE_ON_RECEIPT",
        "LEDGER_APPEND_ONLY",
        "SEQUENCE_MONOTONICITY",
        "EXACT_REVERSAL",
    }

    def test_required_invariants_declared(self):
        declared = {member.name for member in CostingInvariant}
        missing = self.REQUIRED - declared
        assert not missing, f"Missing invariants: {sorted(missing)}"

    def test_all_invariants_non_empty(self):
        assert ALL_COSTING_INVARIANTS
        assert ALL_COSTING_INVARIANTS == frozenset(CostingInvariant)

    def test_every_invariant_has_a_value(self):
        blank = [m.name for m in CostingInvariant if not m.value]
        assert not blank

    def test_forbidden_imports_cover_upper_layers(self):
        assert set(FORBIDDEN_KERNEL_IMPORTS) == {
            "costing_engines",
            "costing_services",
            "costing_config",
        }
