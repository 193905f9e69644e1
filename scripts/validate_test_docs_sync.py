#!/usr/bin/env python3
"""
Validate that test_scenarios_business_summary.md stays in sync with test_integration_scenarios.py.

This script checks:
1. All scenario classes in the test file are documented
2. All scenario methods are referenced in the doc
3. Warns about documented scenarios that no longer exist

Run: python scripts/validate_test_docs_sync.py
"""

import ast
import re
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
TEST_FILE = PROJECT_ROOT / 'tests' / 'test_integration_scenarios.py'
DOC_FILE = PROJECT_ROOT / 'docs' / 'test_scenarios_business_summary.md'


def collect_scenarios(test_file: Path) -> dict[str, list[str]]:
    """Map each top-level Test* class to its test_* methods, in file order."""
    tree = ast.parse(test_file.read_text())

    scenarios = {}
    for node in tree.body:
        if isinstance(node, ast.ClassDef) and node.name.startswith('Test'):
            scenarios[node.name] = [
                item.name
                for item in node.body
                if isinstance(item, ast.FunctionDef) and item.name.startswith('test_')
            ]
    return scenarios


def collect_documented(doc_file: Path) -> tuple[set[str], set[str]]:
    """Class and method names referenced in the documentation."""
    content = doc_file.read_text()

    # e.g. **Test Class**: `TestSubscriptionRenewals`
    classes = set(re.findall(r'\*\*Test Class\*\*:\s*`(Test\w+)`', content))
    # e.g. **Test Method**: `test_month_end_renewal`
    methods = set(re.findall(r'\*\*Test Method\*\*:\s*`(test_\w+)`', content))

    return classes, methods


def find_drift(test_file: Path = TEST_FILE, doc_file: Path = DOC_FILE) -> dict[str, set[str]]:
    """
    Differences between tests and documentation.

    `missing_*` are tests with no documentation (errors); `stale_*` are
    documented names with no test (warnings).
    """
    scenarios = collect_scenarios(test_file)
    doc_classes, doc_methods = collect_documented(doc_file)
    test_methods = {m for methods in scenarios.values() for m in methods}

    return {
        'missing_classes': set(scenarios) - doc_classes,
        'missing_methods': test_methods - doc_methods,
        'stale_classes': doc_classes - set(scenarios),
        'stale_methods': doc_methods - test_methods,
    }


def main():
    for path in (TEST_FILE, DOC_FILE):
        if not path.exists():
            print(f"❌ File not found: {path}")
            sys.exit(1)

    scenarios = collect_scenarios(TEST_FILE)
    doc_classes, doc_methods = collect_documented(DOC_FILE)
    drift = find_drift()

    errors = [f"Missing class documentation: {c}" for c in drift['missing_classes']]
    errors += [f"Missing method documentation: {m}" for m in drift['missing_methods']]
    warnings = [f"Documented class no longer exists: {c}" for c in drift['stale_classes']]
    warnings += [f"Documented method no longer exists: {m}" for m in drift['stale_methods']]

    print("=" * 60)
    print("Test Documentation Sync Validation")
    print("=" * 60)
    print(f"\nScenario classes: {len(scenarios)} ({len(doc_classes)} documented)")
    print(f"Scenario methods: {sum(len(m) for m in scenarios.values())} ({len(doc_methods)} documented)")

    if errors:
        print(f"\n❌ ERRORS ({len(errors)}):")
        for error in sorted(errors):
            print(f"   - {error}")

    if warnings:
        print(f"\n⚠️  WARNINGS ({len(warnings)}):")
        for warning in sorted(warnings):
            print(f"   - {warning}")

    if not errors and not warnings:
        print("\n✅ All scenarios are documented and in sync!")

    print("\nCoverage by Class:")
    for cls, methods in scenarios.items():
        print(f"\n  {'✅' if cls in doc_classes else '❌'} {cls}")
        for method in methods:
            print(f"      {'✅' if method in doc_methods else '❌'} {method}")

    sys.exit(1 if errors else 0)


if __name__ == '__main__':
    main()
