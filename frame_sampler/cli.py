"""
CLI Module

Command-line interface for sampling jobs and local extraction/filtering.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .config import FailurePolicy, ImageFormat, get_sampler_config, print_config
from .errors import JobFailure, SamplerError
from .logging import add_file_handler, set_level
from .messages import parse_request
from .modules.frame_extractor import FrameExtractor
from .modules.frame_filter import HistogramFilter
from .modules.storage import S3ObjectStore
from .pipeline import SamplingPipeline
from .utils.io import load_json, save_json

console = Console()

FORMAT_CHOICES = click.Choice([f.value for f in ImageFormat])


def _load(config_path: Optional[str], overrides: dict):
    try:
        config = get_sampler_config(config_path, overrides)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        sys.exit(1)

    ctx = click.get_current_context()
    if not ctx.find_root().params.get("verbose"):
        set_level(config.logging.level)
    if config.logging.file:
        add_file_handler(Path(config.logging.file))
    return config


def _fail(error: SamplerError) -> None:
    if isinstance(error, JobFailure):
        console.print(f"[red]Job failed at {error.stage.value}:[/] {error.cause}")
    else:
        console.print(f"[red]Failed:[/] {error}")
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also log to this file")
@click.pass_context
def main(ctx: click.Context, verbose: bool, log_file: Optional[str]) -> None:
    """
    Frame Sampler - sample video frames, drop near-duplicates, upload the rest.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    set_level("DEBUG" if verbose else "INFO")
    if log_file:
        add_file_handler(Path(log_file))


@main.command("sample")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config YAML file")
@click.option("--request", "-r", "request_file", type=click.Path(exists=True), help="Request JSON file")
@click.option("--source-bucket", help="Bucket holding the video")
@click.option("--source-key", help="Object key of the video")
@click.option("--dest-bucket", help="Bucket for the frames")
@click.option("--dest-folder", default="", help="Key prefix for the frames")
@click.option("--threshold", type=float, help="Change threshold (L1, 0-2)")
@click.option("--concurrency", type=int, help="Upload concurrency limit")
@click.option("--rate", type=float, help="Frames per second to sample")
@click.option("--format", "image_format", type=FORMAT_CHOICES, help="Frame image format")
@click.option("--policy", type=click.Choice([p.value for p in FailurePolicy]), help="Upload failure policy")
@click.option("--keep-workdir", is_flag=True, help="Do not delete the job working directory")
@click.option("--json", "as_json", is_flag=True, help="Print the response as JSON")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Save the response JSON here")
def sample_cmd(
    config_path: Optional[str],
    request_file: Optional[str],
    source_bucket: Optional[str],
    source_key: Optional[str],
    dest_bucket: Optional[str],
    dest_folder: str,
    threshold: Optional[float],
    concurrency: Optional[int],
    rate: Optional[float],
    image_format: Optional[str],
    policy: Optional[str],
    keep_workdir: bool,
    as_json: bool,
    output: Optional[str],
) -> None:
    """Run one sampling job against object storage."""
    overrides = {"transfer.failure_policy": policy}
    if keep_workdir:
        overrides["workspace.cleanup"] = False
    config = _load(config_path, overrides)
    if as_json:
        # Console logs share stdout with the JSON document
        set_level("WARNING")

    if request_file:
        payload = load_json(Path(request_file))
    else:
        payload = {
            "source": {"bucket": source_bucket, "fileKey": source_key},
            "destination": {"bucket": dest_bucket, "folder": dest_folder},
        }
    payload["options"] = payload.get("options") or {}
    cli_options = {
        "changeThreshold": threshold,
        "uploadConcurrencyLimit": concurrency,
        "sampleRate": rate,
        "imageFormat": image_format,
    }
    payload["options"].update({k: v for k, v in cli_options.items() if v is not None})

    try:
        request = parse_request(payload)
        pipeline = SamplingPipeline(S3ObjectStore.from_config(config.storage), config)
        response = asyncio.run(pipeline.run(request))
    except SamplerError as e:
        _fail(e)

    wire = response.to_wire()
    if output:
        save_json(wire, Path(output))

    if as_json:
        click.echo(json.dumps(wire, indent=2))
        return

    table = Table(title=f"{response.message} ({len(response.frame_file_keys)})")
    table.add_column("Frame", style="cyan")
    table.add_column("Time (s)", justify="right")
    table.add_column("Key", style="green")
    for frame in response.frame_file_keys:
        table.add_row(frame.frame_number, f"{frame.frame_time:.2f}", frame.frame_file_key)
    console.print(table)

    for failed in response.failed:
        console.print(f"[red]Failed:[/] {failed.frame_file_key}: {failed.error}")

    if response.stats:
        stats = response.stats
        console.print(
            f"Sampled {stats.sampled_frames}, kept {stats.retained_frames}, "
            f"uploaded {stats.uploaded_frames} (job {stats.job_id})"
        )


@main.command("extract")
@click.argument("video", type=click.Path(exists=True, dir_okay=False))
@click.option("--output-dir", "-o", type=click.Path(file_okay=False), required=True, help="Frame output directory")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config YAML file")
@click.option("--rate", type=float, help="Frames per second to sample")
@click.option("--format", "image_format", type=FORMAT_CHOICES, help="Frame image format")
def extract_cmd(
    video: str,
    output_dir: str,
    config_path: Optional[str],
    rate: Optional[float],
    image_format: Optional[str],
) -> None:
    """Sample frames from a local VIDEO."""
    config = _load(config_path, {"extraction.sample_rate": rate, "extraction.image_format": image_format})
    extractor = FrameExtractor(config.extraction)

    try:
        result = extractor.extract(Path(video), Path(output_dir))
    except SamplerError as e:
        _fail(e)

    console.print(f"[green]Extracted {result.frame_count} frames[/] into {result.output_dir}")
    for frame in result.frames:
        console.print(f"  {frame.time:8.2f}s  {frame.path.name}")


@main.command("filter")
@click.argument("video", type=click.Path(exists=True, dir_okay=False))
@click.option("--output-dir", "-o", type=click.Path(file_okay=False), required=True, help="Frame output directory")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config YAML file")
@click.option("--rate", type=float, help="Frames per second to sample")
@click.option("--format", "image_format", type=FORMAT_CHOICES, help="Frame image format")
@click.option("--threshold", type=float, help="Change threshold (L1, 0-2)")
def filter_cmd(
    video: str,
    output_dir: str,
    config_path: Optional[str],
    rate: Optional[float],
    image_format: Optional[str],
    threshold: Optional[float],
) -> None:
    """Sample a local VIDEO and list the frames that survive the change filter."""
    config = _load(config_path, {
        "extraction.sample_rate": rate,
        "extraction.image_format": image_format,
        "filter.change_threshold": threshold,
        "filter.show_progress": True,
    })

    try:
        extraction = FrameExtractor(config.extraction).extract(Path(video), Path(output_dir))
        result = HistogramFilter(config.filter).filter_frames(extraction.frames)
    except SamplerError as e:
        _fail(e)

    table = Table(title=f"Kept {result.retained_frames}/{result.total_frames} frames ({result.retain_rate:.1%})")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Time (s)", justify="right")
    table.add_column("Distance", justify="right")
    table.add_column("File", style="green")
    for frame, dist in zip(result.frames, result.distances):
        table.add_row(str(frame.ordinal), f"{frame.time:.2f}", "-" if dist is None else f"{dist:.3f}", frame.path.name)
    console.print(table)


@main.command("show-config")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config YAML file")
def show_config_cmd(config_path: Optional[str]) -> None:
    """Print the merged configuration (secrets masked)."""
    config = _load(config_path, {})
    click.echo(print_config(config))


if __name__ == "__main__":
    main()
