#!/usr/bin/env python3

import argparse
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import facesvg as fsvg

SVG_PATH_TAG = "{%s}path" % fsvg.SVG_NS


@dataclass
class Case:
    name: str
    payload: Dict[str, Any]
    source_file: Path


def _read_case(path: Path) -> Case:
    payload = fsvg.load_payload(str(path))
    if not isinstance(payload, dict) or not isinstance(payload.get("faces"), list):
        raise TypeError(f"{path}: expected an object with a 'faces' list")
    return Case(name=path.stem, payload=payload, source_file=path)


def _iter_cases(faces_dir: Path) -> List[Case]:
    if not faces_dir.exists():
        raise FileNotFoundError(f"Faces dir not found: {faces_dir}")

    cases = [_read_case(p) for p in sorted(faces_dir.glob("*.json"))]
    if not cases:
        raise FileNotFoundError(f"No *.json found in: {faces_dir}")
    return cases


def _find_error_warnings(warnings: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [w for w in warnings or [] if str((w or {}).get("severity", "")).lower() == "error"]


def _validate_svg(svg: str, *, name: str, expected_paths: int) -> None:
    if not isinstance(svg, str) or not svg.strip():
        raise ValueError(f"{name}: empty svg")
    root = ET.fromstring(svg)
    found = len(root.findall(SVG_PATH_TAG))
    if found != expected_paths:
        raise ValueError(f"{name}: expected {expected_paths} <path> elements, found {found}")


def main(argv: List[str]) -> int:
    ap = argparse.ArgumentParser(description="Render every face description in a directory and validate the SVGs.")
    ap.add_argument(
        "--faces-dir",
        default="examples/faces",
        help="Directory containing face description *.json files (default: %(default)s)",
    )
    ap.add_argument(
        "--out-dir",
        default="artifacts/export_batch",
        help="Output directory for generated SVGs (default: %(default)s)",
    )
    args = ap.parse_args(argv)

    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    cases = _iter_cases(Path(args.faces_dir))

    failures: List[Tuple[str, str]] = []
    for c in cases:
        try:
            res = fsvg.generate_svg(c.payload, {})
            svg = res.get("svg")
            warnings = res.get("warnings") or []

            _validate_svg(svg, name=c.name, expected_paths=res["meta"]["paths"])

            errors = _find_error_warnings(warnings)
            if errors:
                raise ValueError(f"Blocking errors returned: {errors}")

            out_path = out_dir / f"{c.name}.svg"
            out_path.write_text(svg, encoding="utf-8")
            print(f"OK  {c.name} -> {out_path}")
        except (fsvg.FaceSVGError, ET.ParseError, OSError, KeyError, TypeError) as e:
            failures.append((c.name, str(e)))
            print(f"FAIL {c.name}: {e}", file=sys.stderr)

    if failures:
        print("\nFailures:", file=sys.stderr)
        for name, msg in failures:
            print(f"- {name}: {msg}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
