"""
Import-boundary enforcement for the four layers.

1. Kernel       -- progress_kernel/** never depends upward.
2. Engines      -- progress_engines/** are pure: no ORM, no DB drivers, no
                   services or config, no wall-clock or environment reads.
3. Config       -- progress_config/** depends on the kernel only.
4. Invariants   -- the kernel invariant declaration is complete.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

from progress_kernel.invariants import (
    ALL_KERNEL_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    KernelInvariant,
)

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    """All .py files under *package*, sorted for deterministic order."""
    return sorted(Path(p) for p in glob.glob(f"{ROOT / package}/**/*.py", recursive=True))


def _parse(filepath: Path) -> ast.AST | None:
    try:
        return ast.parse(filepath.read_text(), filename=str(filepath))
    except (SyntaxError, UnicodeDecodeError):
        return None


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = _parse(filepath)
    if tree is None:
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


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                found.append(f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:
    def test_packages_exist(self):
        for package in ("progress_kernel", "progress_engines", "progress_config", "progress_services"):
            assert _python_files(package), f"{package} not found under {ROOT}"

    def test_kernel_does_not_import_upper_layers(self):
        violations = _violations("progress_kernel", FORBIDDEN_KERNEL_IMPORTS)
        assert not violations, (
            "Kernel boundary violation: progress_kernel/** must not import "
            "services, config or engines:\n" + "\n".join(violations)
        )


class TestEnginePurity:
    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "yaml",
        "openpyxl",
        "progress_kernel.models",
        "progress_kernel.db",
        "progress_kernel.selectors",
        "progress_kernel.services",
        "progress_services",
        "progress_config",
    )

    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
    })

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("progress_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Engine purity violation: progress_engines/** must not import "
            "ORM, DB drivers, selectors, services or config:\n" + "\n".join(violations)
        )

    def test_engines_do_not_read_clock_or_environment(self):
        violations = []
        for filepath in _python_files("progress_engines"):
            tree = _parse(filepath)
            if tree is None:
                continue
            for node in ast.walk(tree):
                if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
                    name = f"{node.value.id}.{node.attr}"
                    if name in self.FORBIDDEN_CALLS:
                        violations.append(f"  {filepath.relative_to(ROOT)}:{node.lineno} uses {name}")
        assert not violations, "Impure engine code:\n" + "\n".join(violations)


class TestConfigBoundary:
    def test_config_depends_on_kernel_only(self):
        violations = _violations("progress_config", ("progress_engines", "progress_services"))
        assert not violations, (
            "Config boundary violation: progress_config/** may only import "
            "the kernel:\n" + "\n".join(violations)
        )


class TestInvariantDeclaration:
    def test_all_invariants_listed(self):
        assert ALL_KERNEL_INVARIANTS == frozenset(KernelInvariant)
        assert len(ALL_KERNEL_INVARIANTS) >= 5

    def test_every_invariant_documented(self):
        source = (ROOT / "progress_kernel" / "invariants.py").read_text()
        tree = ast.parse(source)
        enum_class = next(
            n for n in ast.walk(tree) if isinstance(n, ast.ClassDef) and n.name == "KernelInvariant"
        )
        body = enum_class.body
        undocumented = []
        for i, node in enumerate(body):
            if isinstance(node, ast.Assign):
                following = body[i + 1] if i + 1 < len(body) else None
                has_doc = (
                    isinstance(following, ast.Expr)
                    and isinstance(following.value, ast.Constant)
                    and isinstance(following.value.value, str)
                )
                if not has_doc:
                    undocumented.append(node.targets[0].id)
        assert not undocumented, f"Invariants without a docstring: {undocumented}"
