"""
Import-boundary enforcement.

1. Kernel boundary      -- stock_kernel/** may not import any outer package.
2. Domain purity        -- stock_kernel/domain/** may not import the ORM,
                           the database layer, services or selectors.
3. Service boundary     -- stock_services/** may not import stock_batch,
                           stock_config or scripts.
4. Batch boundary       -- stock_batch/** may not import stock_services,
                           stock_config or scripts.
5. Config centralisation -- outside stock_config only the package itself
                           (get_active_config) is imported.
6. Clock discipline     -- only stock_kernel/domain/clock.py reads the
                           wall clock.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _python_files(package: str) -> list[str]:
    """Return all .py files under *package*, sorted for deterministic order."""
    return sorted(glob.glob(str(ROOT / package / "**" / "*.py"), recursive=True))


def _parse(filepath: str) -> ast.AST:
    return ast.parse(Path(filepath).read_text(), filename=filepath)


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    results: list[tuple[int, str]] = []
    for node in ast.walk(_parse(filepath)):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module and node.level == 0:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                rel = Path(filepath).relative_to(ROOT)
                found.append(f"{rel}:{lineno} imports {module}")
    return found


# ---------------------------------------------------------------------------
# Layer boundaries
# ---------------------------------------------------------------------------


class TestLayerBoundaries:
    @pytest.mark.parametrize(
        "package, forbidden",
        [
            ("stock_kernel", ("stock_services", "stock_batch", "stock_config", "scripts")),
            (
                "stock_kernel/domain",
                (
                    "sqlalchemy",
                    "stock_kernel.db",
                    "stock_kernel.models",
                    "stock_kernel.services",
                    "stock_kernel.selectors",
                ),
            ),
            ("stock_services", ("stock_batch", "stock_config", "scripts")),
            ("stock_batch", ("stock_services", "stock_config", "scripts")),
            ("stock_config", ("stock_services", "stock_batch", "scripts")),
        ],
    )
    def test_no_forbidden_imports(self, package, forbidden):
        assert _python_files(package), f"no sources found under {package}"
        violations = _violations(package, forbidden)
        assert not violations, "\n".join(violations)


class TestConfigCentralisation:
    def test_only_public_entrypoint_used(self):
        violations = []
        for package in ("stock_kernel", "stock_services", "stock_batch", "scripts"):
            for filepath in _python_files(package):
                for lineno, module in _extract_imports(filepath):
                    if module.startswith("stock_config."):
                        rel = Path(filepath).relative_to(ROOT)
                        violations.append(f"{rel}:{lineno} imports {module}")
        assert not violations, "\n".join(violations)


# ---------------------------------------------------------------------------
# Clock discipline
# ---------------------------------------------------------------------------

_WALL_CLOCK_CALLS = {("datetime", "now"), ("datetime", "utcnow"), ("date", "today")}


def _wall_clock_calls(filepath: str) -> list[int]:
    lines = []
    for node in ast.walk(_parse(filepath)):
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Attribute)
            and isinstance(node.func.value, ast.Name)
            and (node.func.value.id, node.func.attr) in _WALL_CLOCK_CALLS
        ):
            lines.append(node.lineno)
    return lines


class TestClockDiscipline:
    def test_wall_clock_only_in_clock_module(self):
        allowed = ROOT / "stock_kernel" / "domain" / "clock.py"
        violations = []
        for package in ("stock_kernel", "stock_services", "stock_batch"):
            for filepath in _python_files(package):
                if Path(filepath) == allowed:
                    continue
                for lineno in _wall_clock_calls(filepath):
                    violations.append(f"{Path(filepath).relative_to(ROOT)}:{lineno}")
        assert not violations, "\n".join(violations)
