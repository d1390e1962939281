"""Command-line interface for slidealign."""

import argparse
import csv
import dataclasses
import logging
import os
import pathlib
import sys
import time
import typing
from typing import List

import tqdm

from . import __version__, annotations_io
from .affine import AffineTransform2D
from .align.estimator import downsample_for_pixel_size
from .models import AlignmentResult, AlignmentTask, AlignmentType, TransformationType
from .rois import map_roi
from .sources import read_image_source
from .transform_state import TransformState

log = logging.getLogger(__name__)

REQUIRED_BATCH_HEADERS = ["base-path", "to-align-path"]


def create_parser() -> argparse.ArgumentParser:
    """Creates the argument parser for the CLI."""
    os.environ["COLUMNS"] = "80"
    parser = argparse.ArgumentParser(
        description=(
            "Estimate the affine transform aligning an image on top of a base "
            "image, using intensities, area annotations or point annotations."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    mode_group = parser.add_mutually_exclusive_group(required=True)
    mode_group.add_argument(
        "--batch-csv",
        metavar="FILE",
        help="Path to CSV file for batch processing.",
    )
    mode_group.add_argument(
        "--base",
        dest="base_path",
        metavar="IMAGE",
        help="Image to align to.",
    )
    parser.add_argument(
        "--to-align",
        dest="to_align_path",
        metavar="IMAGE",
        help="Image to align on top of the base image.",
    )
    parser.add_argument(
        "--alignment-type",
        choices=[tt.value for tt in AlignmentType],
        default=AlignmentType.INTENSITY.value,
        help="What to look at on the images.",
    )
    parser.add_argument(
        "--transformation-type",
        choices=[tt.value for tt in TransformationType],
        default=TransformationType.AFFINE.value,
        help="Full affine, or rotation and translation only.",
    )
    parser.add_argument(
        "--downsample",
        type=float,
        default=1.0,
        metavar="FACTOR",
        help="Downsample at which intensities or area annotations are compared.",
    )
    parser.add_argument(
        "--pixel-size",
        type=float,
        metavar="MICRONS",
        help="Compare at this pixel size instead of --downsample; needs a "
        "calibrated base image.",
    )
    parser.add_argument(
        "--base-pixel-size",
        type=float,
        metavar="MICRONS",
        help="Pixel size of the base image.",
    )
    parser.add_argument(
        "--to-align-pixel-size",
        type=float,
        metavar="MICRONS",
        help="Pixel size of the image to align.",
    )
    parser.add_argument(
        "--base-annotations",
        metavar="GEOJSON",
        help="Annotations of the base image.",
    )
    parser.add_argument(
        "--to-align-annotations",
        metavar="GEOJSON",
        help="Annotations of the image to align.",
    )
    parser.add_argument(
        "--initial-transform",
        metavar="FILE",
        help="Text file with a starting transform (two rows of three numbers).",
    )
    parser.add_argument(
        "--output",
        metavar="FILE",
        help="Write the transform to this file instead of printing it.",
    )
    parser.add_argument(
        "--map-annotations-out",
        metavar="GEOJSON",
        help="Map the annotations of the image to align into base image "
        "coordinates and write them here.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def _caster(annotation):
    args = [aa for aa in typing.get_args(annotation) if aa is not type(None)]
    return args[0] if args else annotation


def prepare_batch_tasks(args: argparse.Namespace) -> List[AlignmentTask]:
    """Reads CSV and prepares a list of AlignmentTask objects.

    Optional columns override the command line value for their row.
    """
    log.info(f"Reading batch tasks from: {args.batch_csv}")
    tasks: List[AlignmentTask] = []
    required = [h.replace("-", "_") for h in REQUIRED_BATCH_HEADERS]
    task_annot = {
        ff.name: _caster(ff.type)
        for ff in dataclasses.fields(AlignmentTask)
        if ff.name not in (*required, "row_num")
    }
    try:
        with open(args.batch_csv, mode="r", encoding="utf-8-sig") as infile:
            reader = csv.DictReader(infile)
            if not reader.fieldnames:
                raise ValueError("CSV file appears to be empty or has no header.")
            # replace all - with _ in the header
            reader.fieldnames = [
                f.strip().replace("-", "_") for f in reader.fieldnames
            ]
            missing = [h for h in required if h not in reader.fieldnames]
            if missing:
                missing = [h.replace("_", "-") for h in missing]
                raise ValueError(f"CSV missing required headers: {', '.join(missing)}")

            for i, row in enumerate(reader):
                row_num = i + 2
                try:
                    kwargs = {kk: row[kk].strip() for kk in required}
                    if not all(kwargs.values()):
                        raise ValueError("empty image path")
                    for kk, caster in task_annot.items():
                        val_from_csv = row.get(kk)
                        if val_from_csv is not None and val_from_csv.strip() != "":
                            kwargs[kk] = caster(val_from_csv.strip())
                        else:
                            kwargs[kk] = getattr(args, kk)
                    kwargs["row_num"] = row_num
                    tasks.append(AlignmentTask(**kwargs))
                except (ValueError, TypeError, KeyError) as ve:
                    log.warning(
                        f"Skipping CSV row {row_num} due to invalid value: {ve}. Row: {row}"
                    )
                    continue
        log.info(f"Prepared {len(tasks)} tasks from CSV file.")
        return tasks
    except FileNotFoundError:
        log.error(f"Batch CSV file not found: {args.batch_csv}")
        raise
    except Exception as e:
        log.error(f"Failed to read or parse CSV file {args.batch_csv}: {e}")
        raise


def task_from_args(args: argparse.Namespace) -> AlignmentTask:
    names = {ff.name for ff in dataclasses.fields(AlignmentTask)} - {"row_num"}
    return AlignmentTask(**{kk: getattr(args, kk) for kk in names})


def execute_task(task: AlignmentTask) -> AlignmentResult:
    """Runs one alignment; estimation errors propagate."""
    base = read_image_source(task.base_path, pixel_size=task.base_pixel_size)
    to_align = read_image_source(
        task.to_align_path, pixel_size=task.to_align_pixel_size
    )
    base_annotations = []
    to_align_annotations = []
    if task.base_annotations:
        base_annotations = annotations_io.read_annotations(task.base_annotations)
    if task.to_align_annotations:
        to_align_annotations = annotations_io.read_annotations(
            task.to_align_annotations
        )

    downsample = task.downsample
    if task.pixel_size is not None:
        downsample = downsample_for_pixel_size(task.pixel_size, base)
        log.info(f"Aligning at pixel size {task.pixel_size} (downsample {downsample:.3f})")

    state = TransformState(to_align, reference=base)
    if task.initial_transform:
        text = pathlib.Path(task.initial_transform).read_text()
        state.set_matrix(*AffineTransform2D.from_text(text).params)

    transform = state.align_automatically(
        base,
        to_align,
        AlignmentType.parse(task.alignment_type),
        TransformationType.parse(task.transformation_type),
        downsample,
        base_annotations=base_annotations,
        target_annotations=to_align_annotations,
    )

    if task.output:
        out_path = pathlib.Path(task.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(transform.to_text() + "\n")
        log.info(f"Transform written to {out_path}")
    else:
        log.info(f"Transform of {task.to_align_path} onto {task.base_path}:")
        print(transform.to_text())

    rois_mapped = None
    if task.map_annotations_out:
        # the transform maps base coordinates onto the image to align
        mapped = [
            dataclasses.replace(aa, roi=map_roi(aa.roi, state.inverse_transform))
            for aa in to_align_annotations
        ]
        annotations_io.write_annotations(task.map_annotations_out, mapped)
        rois_mapped = len(mapped)

    return AlignmentResult(
        base_path=task.base_path,
        to_align_path=task.to_align_path,
        success=True,
        message="Completed successfully.",
        affine_matrix=transform.matrix,
        rois_mapped=rois_mapped,
        row_num=task.row_num,
    )


def run_task(task: AlignmentTask) -> AlignmentResult:
    """Executes a single alignment task and returns the result."""
    try:
        log.info(f"Processing pair: {task.to_align_path} onto {task.base_path}")
        return execute_task(task)
    except Exception as e:
        log.error(
            f"Failed to align {task.to_align_path} onto {task.base_path}: {e}",
            exc_info=True,
        )
        return AlignmentResult(
            base_path=task.base_path,
            to_align_path=task.to_align_path,
            success=False,
            message=str(e),
            row_num=task.row_num,
        )


def report_summary(
    successful_results: List[AlignmentResult],
    failed_results: List[AlignmentResult],
    duration: float,
):
    """Prints the final summary to the console."""
    total_tasks = len(successful_results) + len(failed_results)
    print("\n--- Processing Summary ---", file=sys.stderr)
    print(f"Total tasks attempted: {total_tasks}", file=sys.stderr)
    print(f"Successful tasks: {len(successful_results)}", file=sys.stderr)
    print(f"Failed tasks: {len(failed_results)}", file=sys.stderr)
    if failed_results:
        print("\nFailures occurred:", file=sys.stderr)
        failed_results.sort(
            key=lambda r: r.row_num if r.row_num is not None else float("inf")
        )
        for result in failed_results:
            row_info = f"(CSV Row {result.row_num}) " if result.row_num else ""
            pair_label = f"{result.to_align_path} -> {result.base_path}"
            msg = f"Pair {pair_label} {row_info}: {result.message}"
            print(f"  - {msg}", file=sys.stderr)
            log.warning(msg)
    print(f"\nTotal execution time: {duration:.2f} seconds", file=sys.stderr)


def main(argv=None):
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.base_path is not None and args.to_align_path is None:
        parser.error("--to-align is required when --base is provided.")

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    successful_results: List[AlignmentResult] = []
    failed_results: List[AlignmentResult] = []
    start_time = time.time()

    try:
        if args.batch_csv:
            tasks = prepare_batch_tasks(args)
        else:
            tasks = [task_from_args(args)]

        if not tasks:
            log.info("No tasks to process. Exiting.")
        else:
            log.info(f"Starting processing for {len(tasks)} task(s).")
            for task in tqdm.tqdm(
                tasks, desc="Processing Tasks", disable=len(tasks) == 1
            ):
                result = run_task(task)
                if result.success:
                    successful_results.append(result)
                else:
                    failed_results.append(result)
    except Exception as e:
        log.critical(f"A critical error occurred: {e}", exc_info=True)
        print(f"\nError: A critical error occurred: {e}", file=sys.stderr)
        sys.exit(1)

    duration = time.time() - start_time
    report_summary(successful_results, failed_results, duration)

    if failed_results:
        sys.exit(1)
    else:
        sys.exit(0)


if __name__ == "__main__":
    main()
