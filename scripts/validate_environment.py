#!/usr/bin/env python3
"""Validate local hostel allotment environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import timedelta
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.repository.data_repository import DataRepository
from backend.services.window_service import AllotmentWindowGate
from backend.utils.clock import utc_now
from backend.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="hostel-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable with versions
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("pandas", "pandas"),
        ("requests", "requests"),
        ("streamlit", "streamlit"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        base_settings = get_settings()
        validation_settings = replace(
            base_settings,
            database_path=Path(temp_dir) / "hostel_validation.db",
            seed_demo_data=True,
        )
        repository = DataRepository(validation_settings)

        # CHECK 3: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Demo hostel seeding
        expected_rooms = validation_settings.demo_floors * validation_settings.demo_rooms_per_floor
        try:
            seeded_rooms = repository.seed_demo_data()
            if seeded_rooms != expected_rooms:
                raise RuntimeError(f"expected {expected_rooms} rooms, got {seeded_rooms}")
            if repository.seed_demo_data() != 0:
                raise RuntimeError("second seed was not a no-op")
            ok, line = _print_result("Demo hostel", True, f": {seeded_rooms} rooms")
        except Exception as exc:
            ok, line = _print_result("Demo hostel", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Allotment window gate
        try:
            gate = AllotmentWindowGate(repository=repository, settings=validation_settings)
            if gate.is_window_open().open:
                raise RuntimeError("gate reported open with no windows configured")
            now = utc_now()
            gate.create_window(
                title="Validation window",
                open_at=now - timedelta(minutes=5),
                close_at=now + timedelta(minutes=5),
                created_by=None,
            )
            if not gate.is_window_open(now).open:
                raise RuntimeError("gate reported closed inside an active window")
            ok, line = _print_result("Allotment window gate", True)
        except Exception as exc:
            ok, line = _print_result("Allotment window gate", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Hostel Allotment Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
