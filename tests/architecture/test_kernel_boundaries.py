"""
Architecture boundary tests.

1. tranche_kernel/** may NOT import tranche_engines, tranche_config or
   tranche_services.  The kernel never depends upward.
2. tranche_engines/** may NOT import tranche_config or tranche_services,
   touch the database, or read a clock.
3. The accounting invariant declaration is complete.

These tests read source code via AST.
"""

import ast
import glob
from pathlib import Path

from tranche_kernel.invariants import (
    ALL_ACCOUNTING_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    AccountingInvariant,
)

ENGINE_FORBIDDEN = (
    "tranche_config",
    "tranche_services",
    "tranche_kernel.db",
    "tranche_kernel.models",
    "tranche_kernel.services",
    "tranche_kernel.domain.clock",
    "sqlalchemy",
)


def _python_files(root: str) -> list[str]:
    return sorted(glob.glob(f"{root}/**/*.py", recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(root: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(root):
        for lineno, module in _extract_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {filepath}:{lineno} imports '{module}'")
    return found


class TestKernelNoUpwardDependencies:
    def test_kernel_does_not_import_forbidden_packages(self):
        assert _python_files("tranche_kernel"), "run from the repository root"
        violations = _violations("tranche_kernel", FORBIDDEN_KERNEL_IMPORTS)
        assert not violations, "Kernel boundary violation:\n" + "\n".join(violations)


class TestEnginePurity:
    def test_engines_have_no_io_imports(self):
        violations = _violations("tranche_engines", ENGINE_FORBIDDEN)
        assert not violations, "Engine purity violation:\n" + "\n".join(violations)


class TestInvariantDeclaration:
    def test_all_invariants_declared(self):
        assert ALL_ACCOUNTING_INVARIANTS == frozenset(AccountingInvariant)
        assert {i.value for i in AccountingInvariant} >= {
            "conservation",
            "coverage",
            "debt_non_negative",
            "senior_rounding",
            "single_writer",
            "sync_before_parameter_change",
        }
