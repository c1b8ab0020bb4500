"""
Kernel boundary tests.

1. ledger_kernel/** may NOT import ledger_services or ledger_config.
   The kernel never depends upward.
2. Selectors are read-only and never import services.
3. Only AccountService writes ``current_balance``.

These tests read source code via AST and text; they cannot break anything.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted(Path(p) for p in glob.glob(f"{ROOT / package}/**/*.py", recursive=True))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestKernelNoUpwardDependencies:
    def test_kernel_does_not_import_outer_packages(self):
        violations = _violations("ledger_kernel", ("ledger_services", "ledger_config"))
        assert not violations, (
            "Kernel boundary violation -- ledger_kernel/** must not import "
            "outer packages:\n" + "\n".join(violations)
        )

    def test_config_does_not_import_services(self):
        violations = _violations("ledger_config", ("ledger_services",))
        assert not violations, "\n".join(violations)

    def test_selectors_do_not_import_services(self):
        violations = _violations("ledger_kernel/selectors", ("ledger_kernel.services",))
        assert not violations, (
            "Selectors are read-only and must not import services:\n" + "\n".join(violations)
        )


class TestSingleMutationPath:
    def test_only_account_service_assigns_current_balance(self):
        offenders = []
        for filepath in _python_files("ledger_kernel") + _python_files("ledger_services"):
            if filepath.name == "account_service.py":
                continue
            tree = ast.parse(filepath.read_text(), filename=str(filepath))
            for node in ast.walk(tree):
                targets = []
                if isinstance(node, ast.Assign):
                    targets = node.targets
                elif isinstance(node, ast.AugAssign):
                    targets = [node.target]
                for target in targets:
                    if isinstance(target, ast.Attribute) and target.attr == "current_balance":
                        offenders.append(f"  {filepath.relative_to(ROOT)}:{node.lineno}")
        assert not offenders, (
            "current_balance may only be written by AccountService:\n" + "\n".join(offenders)
        )

    def test_services_never_commit(self):
        offenders = []
        for filepath in _python_files("ledger_kernel/services"):
            tree = ast.parse(filepath.read_text(), filename=str(filepath))
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr in ("commit", "rollback")
                ):
                    offenders.append(f"  {filepath.relative_to(ROOT)}:{node.lineno}")
        assert not offenders, "Kernel services must not commit:\n" + "\n".join(offenders)
