"""
Command Line Interface for page_ocr
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import cv2

from .config import OCRConfig
from .pipeline import OCRPipeline
from .utils import draw_ocr_output


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="page-ocr",
        description="Detect and recognize text in an image",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print recognized lines as JSON
  page-ocr scan.png

  # Markdown table, word boxes, and a rendering of the result
  page-ocr scan.png --format markdown --word-box --vis scan_ocr.png

  # Recognize a single pre-cropped text line
  page-ocr line.png --no-det --no-cls
        """
    )

    parser.add_argument(
        'input',
        type=str,
        help='Input image file path'
    )
    parser.add_argument(
        '--format',
        choices=['json', 'markdown'],
        default='json',
        help='Output format (default: json)'
    )

    # Stage switches
    parser.add_argument('--no-det', action='store_true', help='Skip text detection')
    parser.add_argument('--no-cls', action='store_true', help='Skip orientation classification')
    parser.add_argument('--no-rec', action='store_true', help='Skip text recognition')

    # Word boxes
    parser.add_argument(
        '--word-box',
        action='store_true',
        help='Include word boxes in JSON output'
    )
    parser.add_argument(
        '--single-char-box',
        action='store_true',
        help='With --word-box, one box per character for alphanumeric lines too'
    )

    # Thresholds
    parser.add_argument(
        '--text-score',
        type=float,
        default=None,
        help='Drop lines with recognition confidence below this (default: 0.5)'
    )
    parser.add_argument(
        '--box-thresh',
        type=float,
        default=None,
        help='Detection box score threshold (default: 0.5)'
    )
    parser.add_argument(
        '--unclip-ratio',
        type=float,
        default=None,
        help='Detection box expansion ratio (default: 1.6)'
    )

    parser.add_argument(
        '--vis',
        type=str,
        default=None,
        help='Write an image with the drawn result to this path'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )
    return parser


def config_from_args(args: argparse.Namespace) -> OCRConfig:
    options = {
        "use_det": not args.no_det,
        "use_cls": not args.no_cls,
        "use_rec": not args.no_rec,
        "return_word_box": args.word_box,
        "return_single_char_box": args.single_char_box,
    }
    if args.text_score is not None:
        options["text_score"] = args.text_score
    if args.box_thresh is not None:
        options["det.box_thresh"] = args.box_thresh
    if args.unclip_ratio is not None:
        options["det.unclip_ratio"] = args.unclip_ratio
    return OCRConfig.from_dict(options)


def format_result(result, output_format: str, with_words: bool) -> str:
    if output_format == 'markdown':
        return result.to_markdown()

    records = result.to_json()
    if with_words and result.word_results:
        for record, words in zip(records, result.word_results_as_list()):
            record["words"] = [
                {"text": text, "score": score, "box": box}
                for text, score, box in words
            ]
    return json.dumps(records, ensure_ascii=False, indent=2)


def main(argv=None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file '{args.input}' not found", file=sys.stderr)
        return 1

    try:
        config = config_from_args(args)
        pipeline = OCRPipeline(config)
        result = pipeline(input_path)

        print(format_result(result, args.format, args.word_box))

        if args.vis:
            vis = draw_ocr_output(result.img, result, draw_word_boxes=args.word_box)
            cv2.imwrite(args.vis, vis)
            if args.verbose:
                print(f"Visualisation saved to: {args.vis}", file=sys.stderr)

        if args.verbose:
            det, cls, rec = result.elapse_list or (0.0, 0.0, 0.0)
            print(
                f"{len(result)} lines, det {det:.3f}s cls {cls:.3f}s rec {rec:.3f}s",
                file=sys.stderr
            )
        return 0

    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
