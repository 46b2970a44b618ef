from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from intakeforms.form_model import FormDefinitionError, load_form_definition
from intakeforms.form_ordering import normalize_order, order_problems
from intakeforms.form_schema import derive_schema
from intakeforms.form_visibility import resolve_visibility
from intakeforms.submission_transform import transform_submission


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate a form definition JSON file and optionally dry-run answers against it.",
    )
    parser.add_argument(
        "--input",
        type=Path,
        required=True,
        help="Path to a form definition JSON payload ({fields, sections}).",
    )
    parser.add_argument(
        "--answers",
        type=Path,
        default=None,
        help="Optional answer map JSON to validate, resolve visibility for and transform.",
    )
    parser.add_argument(
        "--normalize",
        action="store_true",
        help="Include the definition with every scope renumbered to 0..n-1.",
    )
    parser.add_argument(
        "--system-fields",
        action="store_true",
        help="Validate the identifier and contact fields as an appeal form would.",
    )
    return parser


def main() -> int:
    args = _parser().parse_args()
    if not args.input.exists():
        raise SystemExit(f"Input payload not found: {args.input}")

    payload = json.loads(args.input.read_text(encoding="utf-8"))
    try:
        definition = load_form_definition(payload)
    except FormDefinitionError as exc:
        print(json.dumps({"valid": False, "error": str(exc)}, indent=2))
        return 1

    summary: dict[str, object] = {
        "valid": True,
        "field_count": len(definition.fields),
        "section_count": len(definition.sections),
        "unsupported_fields": [item.id for item in definition.fields if item.field_type is None],
        "order_problems": order_problems(definition),
    }
    if args.normalize:
        summary["normalized"] = normalize_order(definition).to_dict()

    if args.answers is not None:
        answers = json.loads(args.answers.read_text(encoding="utf-8"))
        visibility = resolve_visibility(definition, answers)
        schema = derive_schema(definition, include_system_fields=args.system_fields)
        summary["visibility"] = visibility.to_dict()
        summary["issues"] = [
            issue.to_dict() for issue in schema.validate(answers, only=visibility.visible_field_ids)
        ]
        summary["submission"] = transform_submission(definition, answers).to_dict()

    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
