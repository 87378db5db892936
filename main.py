#!/usr/bin/env python3
"""
ThemeTree Main Entry Script

Reads a code change (unified diff text or a JSON list of file diffs), builds
the hierarchical theme tree and writes it as JSON.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

from themetree.config.analysis_config import AnalysisConfig
from themetree.llm_client.client import LLMConfig
from themetree.llm_client.errors import ConfigError
from themetree.themetree import ThemeTree
from themetree.utils.diff import FileDiff, parse_unified_diff
from themetree.utils.logs import setup_logger


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="ThemeTree: hierarchical theme analysis of code changes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example Usage:
  # Analyze the working tree changes
  git diff | python main.py --config configs/themetree_config.yaml --output themes.json

  # Analyze a stored diff without calling any model
  python main.py changes.diff --offline

  # Use a separate model configuration
  export ANTHROPIC_API_KEY="your-api-key"
  python main.py changes.json --llm-config configs/llm.yaml --log-level DEBUG

Input formats:
  - unified diff text (output of `git diff`)
  - JSON list of files: [{"path": ..., "hunks": [{"index": 0, "lines": [...]}]}]
        """
    )

    parser.add_argument(
        "input",
        nargs="?",
        default="-",
        help="Diff file to analyze (unified diff or JSON); '-' reads stdin (default)"
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Analysis configuration file (YAML or JSON); defaults apply when omitted"
    )

    parser.add_argument(
        "--llm-config",
        type=str,
        default=None,
        help="Path to LLM configuration file (YAML/JSON). "
             "Overrides the 'llm' section in the main config file."
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Write the result JSON to this path instead of stdout"
    )

    parser.add_argument(
        "--offline",
        action="store_true",
        help="Never call a model; every classification uses the heuristic fallback"
    )

    parser.add_argument(
        "--log-level", "-l",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        type=str,
        help="Log file path, outputs to console only if not specified"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="ThemeTree 0.1.0"
    )

    return parser.parse_args(argv)


def validate_args(args) -> bool:
    """Validate command line arguments"""
    errors = []

    for label, value in (("Input file", args.input), ("Configuration file", args.config),
                         ("LLM configuration file", args.llm_config)):
        if value and value != "-" and not Path(value).exists():
            errors.append(f"{label} does not exist: {value}")

    if errors:
        print("Argument validation failed:", file=sys.stderr)
        for error in errors:
            print(f"  - {error}", file=sys.stderr)
        return False
    return True


def setup_logging(args) -> logging.Logger:
    """Initialize logging for the command line entry point."""
    logger = setup_logger(
        logger=logging.getLogger("themetree"),
        file_path=args.log_file,
        level=args.log_level,
    )
    logger.info("=" * 60)
    logger.info("ThemeTree analysis starting")
    logger.info("Input: %s", "stdin" if args.input == "-" else args.input)
    logger.info("Configuration file: %s", args.config or "(defaults)")
    if args.offline:
        logger.info("Offline mode: heuristic classification only")
    return logger


def load_files(text: str) -> List[FileDiff]:
    """Accept either a JSON list of file diffs or unified diff text."""
    stripped = text.lstrip()
    if stripped.startswith("[") or stripped.startswith("{"):
        data = json.loads(text)
        if isinstance(data, dict):
            data = data.get("files", [])
        return [FileDiff.from_dict(item) for item in data]
    return parse_unified_diff(text)


def run_themetree(args, logger: logging.Logger) -> bool:
    """Run one analysis and write its result."""
    try:
        config = AnalysisConfig.from_source(args.config)
        if args.llm_config:
            config.llm = LLMConfig.from_source(args.llm_config)
            logger.info(f"LLM config overridden from: {args.llm_config}")

        text = sys.stdin.read() if args.input == "-" else Path(args.input).read_text(encoding="utf-8")
        files = load_files(text)
        if not files:
            logger.warning("No file changes found in input")

        analyzer = ThemeTree(config, offline=args.offline, logger=logger)
        result = analyzer.analyze_sync(files)

        if args.output:
            result.save(args.output)
            logger.info(f"Theme tree written to {args.output}")
        else:
            json.dump(result.to_dict(), sys.stdout, indent=2, ensure_ascii=False)
            sys.stdout.write("\n")
        return True

    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return False

    except json.JSONDecodeError as e:
        logger.error(f"Input is not valid JSON: {e}")
        return False

    except KeyboardInterrupt:
        logger.warning("User interrupted execution")
        return False


def main(argv=None):
    """Main function"""
    args = parse_args(argv)
    if not validate_args(args):
        sys.exit(1)

    logger = setup_logging(args)
    try:
        success = run_themetree(args, logger)
    except Exception as e:
        logger.error(f"Main program exception: {e}")
        logger.debug("Detailed exception information:", exc_info=True)
        sys.exit(1)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
