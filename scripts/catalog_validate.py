from __future__ import annotations

import argparse
from pathlib import Path
import sys

from portalight.core.errors import ManifestParseError
from portalight.services.catalog.parser import load_manifest
from portalight.services.catalog.validator import validate_document


def _check(path: Path) -> bool:
    # Offline structural check for manifest authors; owner lookups need the store.
    try:
        document = load_manifest(path.read_bytes())
    except ManifestParseError as exc:
        print(f"{path}: {exc}")
        return False
    errors = validate_document(document)
    for error in errors:
        print(f"{path}: {error.field}: {error.message}")
    if not errors:
        print(f"{path}: ok ({len(document.spec.services)} services)")
    return not errors


def main() -> None:
    parser = argparse.ArgumentParser(description="Validate catalog manifests on disk")
    parser.add_argument("paths", nargs="+")
    args = parser.parse_args()
    results = [_check(Path(path)) for path in args.paths]
    sys.exit(0 if all(results) else 1)


if __name__ == "__main__":
    main()
