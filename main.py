# main.py
"""CLI entry point for the Prosit generation system."""

from __future__ import annotations

import argparse
import sys

from orchestration.cli_runner import CliOptions, run
from orchestration.models import PipelineMode


def parse_args(argv: list[str] | None = None) -> CliOptions:
    parser = argparse.ArgumentParser(
        description="Generate the Prosit Aller, Prosit Retour and CER for a topic."
    )
    parser.add_argument("--topic", default=None, help="Topic of the prosit")
    parser.add_argument(
        "--mode",
        default=PipelineMode.FULL.value,
        choices=[mode.value for mode in PipelineMode],
        help="Which stages to run",
    )
    parser.add_argument(
        "--skip-retour", action="store_true", help="Skip the Prosit Retour stage"
    )
    parser.add_argument("--output", default=None, help="Output directory")
    parser.add_argument("--student", default=None, help="Student full name")
    parser.add_argument("--program", default=None, help="Program code, e.g. X2027")
    parser.add_argument("--year", default=None, help="Academic year")
    parser.add_argument("--context", default="", help="Raw situation text")
    parser.add_argument(
        "--prosit-aller", default=None, help="Imported Prosit Aller (JSON, txt, docx, pptx)"
    )
    parser.add_argument(
        "--prosit-retour", default=None, help="Imported Prosit Retour (JSON, txt, docx, pptx)"
    )
    args = parser.parse_args(argv)
    return CliOptions(
        topic=args.topic,
        mode=args.mode,
        skip_retour=args.skip_retour,
        output_dir=args.output,
        student=args.student,
        program=args.program,
        academic_year=args.year,
        context=args.context,
        prosit_aller_file=args.prosit_aller,
        prosit_retour_file=args.prosit_retour,
    )


def main(argv: list[str] | None = None) -> int:
    """Parse command-line arguments and run the pipeline."""
    return run(parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
