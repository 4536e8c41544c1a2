"""
Diagnostic: run the field extractor and variant discovery on saved HTML pages
(no network, no LLM). Reports which fields are filled vs missing per file.

  python diagnostics.py [DIR]   (default: ./data)
"""

import sys
from pathlib import Path

from errors import MissingRequiredField
from extractor import extract_product
from parser import parse_html
from variants import find_color_options, find_size_options

DATA_DIR = Path(__file__).parent / "data"
REPORTED_FIELDS = [
    "name",
    "brand",
    "discounted_price",
    "original_price",
    "category",
    "images",
    "attributes",
    "features",
    "score",
    "rating_count",
    "favorite_count",
    "color",
]


def diagnose_file(filepath: Path) -> dict:
    html = filepath.read_text(encoding="utf-8")
    page = parse_html(html, url="")

    report = {
        "file": filepath.name,
        "json_ld_blocks": len(page.json_ld),
        "og_tags": len(page.og_tags),
        "colors": [f"{c.label}{' (selected)' if c.selected else ''}" for c in find_color_options(page)],
        "sizes": [f"{s.label}{'' if s.available else ' (disabled)'}" for s in find_size_options(page)],
        "filled": [],
        "missing": [],
        "error": None,
    }

    try:
        product = extract_product(page)
    except MissingRequiredField as e:
        report["error"] = str(e)
        return report

    for field in REPORTED_FIELDS:
        val = getattr(product, field)
        if val is None or val == "" or val == [] or val == 0:
            report["missing"].append(field)
        else:
            report["filled"].append(field)
    return report


def main() -> None:
    data_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else DATA_DIR
    html_files = sorted(data_dir.glob("*.html"))
    print(f"Diagnosing {len(html_files)} HTML files in {data_dir}\n")

    for filepath in html_files:
        r = diagnose_file(filepath)
        print(f"=== {r['file']} ===")
        print(f"  JSON-LD blocks: {r['json_ld_blocks']}, OG tags: {r['og_tags']}")
        print(f"  Colors: {r['colors'] or '-'}")
        print(f"  Sizes:  {r['sizes'] or '-'}")
        if r["error"]:
            print(f"  FAILED: {r['error']}\n")
            continue
        print(f"  Filled ({len(r['filled'])}): {', '.join(r['filled'])}")
        print(f"  Missing ({len(r['missing'])}): {', '.join(r['missing']) or '-'}\n")


if __name__ == "__main__":
    main()
